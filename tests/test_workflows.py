"""Test the everyday branch workflows."""

import unittest

from branchguard.config import Capabilities
from branchguard.errors import BranchGuardError
from branchguard.replace import ReplaceOrchestrator
from branchguard.workflows import BranchWorkflow

from tests.fakes import FakeGit


class TestBranchWorkflow(unittest.TestCase):
    """Test BranchWorkflow against a recording git fake."""

    def test_commit_all_stages_then_commits(self):
        git = FakeGit()
        sha = BranchWorkflow(git).commit_all("Add parser")

        self.assertEqual(sha, "newcommitsha")
        self.assertEqual(git.mutating_calls, [("stage_all",), ("commit", "Add parser")])

    def test_commit_all_rejects_empty_message(self):
        git = FakeGit()
        with self.assertRaises(BranchGuardError):
            BranchWorkflow(git).commit_all("   ")
        self.assertEqual(git.mutating_calls, [])

    def test_first_push_sets_upstream(self):
        git = FakeGit(current_branch="feature")
        workflow = BranchWorkflow(git)
        workflow.push_current(workflow.snapshot())
        self.assertEqual(git.called("push"), [("push", "feature", "origin", True)])

    def test_push_with_upstream(self):
        git = FakeGit(current_branch="feature", upstreams={"feature": "upstream/feature"})
        workflow = BranchWorkflow(git, remote="upstream")
        workflow.push_current(workflow.snapshot())
        self.assertEqual(git.called("push"), [("push", "feature", "upstream", False)])

    def test_push_detached_head_fails(self):
        git = FakeGit(current_branch="HEAD")
        workflow = BranchWorkflow(git)
        with self.assertRaises(BranchGuardError):
            workflow.push_current(workflow.snapshot())

    def test_create_branch_and_switch(self):
        git = FakeGit(local_branches={"main"})
        BranchWorkflow(git).create_branch("feature", "main")
        self.assertEqual(
            git.mutating_calls,
            [("create_branch", "feature", "main"), ("checkout", "feature")],
        )

    def test_create_existing_branch_fails(self):
        git = FakeGit(local_branches={"main", "feature"})
        with self.assertRaises(BranchGuardError):
            BranchWorkflow(git).create_branch("feature")
        self.assertEqual(git.mutating_calls, [])

    def test_switch_with_dirty_tree_requires_stash(self):
        git = FakeGit(dirty=True)
        workflow = BranchWorkflow(git)
        with self.assertRaises(BranchGuardError):
            workflow.switch_branch(workflow.snapshot(), "feature")
        self.assertEqual(git.mutating_calls, [])

    def test_switch_with_stash(self):
        git = FakeGit(dirty=True)
        workflow = BranchWorkflow(git)
        workflow.switch_branch(workflow.snapshot(), "feature", stash=True)
        self.assertEqual(
            git.mutating_calls,
            [
                ("stash_save", "branchguard: auto-stash before switching to feature"),
                ("checkout", "feature"),
            ],
        )

    def test_switch_to_current_branch_is_noop(self):
        git = FakeGit(current_branch="main", dirty=True)
        workflow = BranchWorkflow(git)
        workflow.switch_branch(workflow.snapshot(), "main")
        self.assertEqual(git.mutating_calls, [])

    def test_merge_checks_out_target(self):
        git = FakeGit(current_branch="feature")
        workflow = BranchWorkflow(git)
        outcome = workflow.merge(workflow.snapshot(), "feature", "main")

        self.assertTrue(outcome.succeeded)
        self.assertEqual(git.mutating_calls, [("checkout", "main"), ("merge", "feature")])

    def test_merge_failure_reports_exit_code(self):
        git = FakeGit(current_branch="main", merge_exit_code=1)
        workflow = BranchWorkflow(git)
        outcome = workflow.merge(workflow.snapshot(), "feature", "main")

        self.assertFalse(outcome.succeeded)
        self.assertEqual(git.mutating_calls, [("merge", "feature")])

    def test_merge_refuses_dirty_tree(self):
        git = FakeGit(dirty=True)
        workflow = BranchWorkflow(git)
        with self.assertRaises(BranchGuardError):
            workflow.merge(workflow.snapshot(), "feature", "main")
        self.assertEqual(git.mutating_calls, [])

    def test_start_replace_respects_capability(self):
        git = FakeGit()
        workflow = BranchWorkflow(git, capabilities=Capabilities(safe_replace=False))
        with self.assertRaises(BranchGuardError):
            workflow.start_replace("feature", "main")

    def test_start_replace_passes_settings(self):
        git = FakeGit()
        workflow = BranchWorkflow(git, remote="upstream", protected_branch="trunk")
        orchestrator = workflow.start_replace("feature", "main")

        self.assertIsInstance(orchestrator, ReplaceOrchestrator)
        self.assertEqual(orchestrator.operation.remote, "upstream")
        self.assertEqual(orchestrator.protected_branch, "trunk")
        self.assertEqual(git.mutating_calls, [])


if __name__ == "__main__":
    unittest.main()
