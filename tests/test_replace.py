"""Test the replace orchestrator state machine."""

import unittest
from datetime import datetime, timezone

from branchguard.commit import Commit
from branchguard.errors import (
    BackupFailed,
    CleanupFailed,
    InvalidConfirmation,
    InvalidStateTransition,
    LocalUpdateFailed,
    RemoteRejected,
    UnsafeReplace,
)
from branchguard.replace import (
    ReplaceOrchestrator,
    ReplacePrompter,
    ReplaceState,
    backup_branch_name,
    confirmation_phrase,
)

from tests.fakes import FakeGit

FIXED_TIME = datetime(2025, 3, 4, 5, 6, 7, tzinfo=timezone.utc)


def make_git(**overrides):
    options = {
        "local_branches": {"main", "feature"},
        "remote_branches": {"main", "feature"},
        "shas": {
            "refs/heads/main": "aaaa1111",
            "refs/heads/feature": "bbbb2222",
            "refs/remotes/origin/main": "aaaa1111",
        },
        "commits": {
            "bbbb2222..aaaa1111": [Commit("aaaa1111", "hotfix on main")],
            "aaaa1111..bbbb2222": [
                Commit("bbbb2222", "rewrite"),
                Commit("cccc3333", "new layout"),
            ],
        },
    }
    options.update(overrides)
    return FakeGit(**options)


class CannedPrompter(ReplacePrompter):
    def __init__(self, approve=True, phrase="REPLACE main", cleanup=False):
        self.approve = approve
        self.phrase = phrase
        self.cleanup = cleanup
        self.asked_phrase = False

    def confirm_replace(self, operation):
        return self.approve

    def typed_phrase(self, operation):
        self.asked_phrase = True
        return self.phrase

    def confirm_cleanup(self, operation):
        return self.cleanup


class TestReplaceHelpers(unittest.TestCase):
    """Test naming helpers."""

    def test_backup_branch_name_uses_utc(self):
        self.assertEqual(backup_branch_name("main", FIXED_TIME), "main-backup-20250304-050607")

    def test_confirmation_phrase(self):
        self.assertEqual(confirmation_phrase("release"), "REPLACE release")

    def test_same_source_and_target_rejected(self):
        with self.assertRaises(ValueError):
            ReplaceOrchestrator(make_git(), "main", "main")


class TestReplaceOrchestrator(unittest.TestCase):
    """Drive the replace state machine step by step."""

    def setUp(self):
        self.git = make_git()
        self.orchestrator = ReplaceOrchestrator(
            self.git, "feature", "main", clock=lambda: FIXED_TIME
        )

    def confirmed(self):
        self.orchestrator.analyze_impact()
        self.orchestrator.confirm(True, "REPLACE main")

    def test_impact_lists_lost_and_gained_commits(self):
        impact = self.orchestrator.analyze_impact()

        self.assertEqual([c.sha for c in impact.commits_lost], ["aaaa1111"])
        self.assertEqual([c.sha for c in impact.commits_gained], ["bbbb2222", "cccc3333"])
        self.assertEqual(impact.remote_target_sha, "aaaa1111")
        self.assertEqual(self.orchestrator.state, ReplaceState.IMPACT_ANALYZED)
        self.assertEqual(self.git.mutating_calls, [])

    def test_wrong_phrase_aborts_without_mutation(self):
        self.orchestrator.analyze_impact()
        for phrase in ["replace main", "REPLACE main ", "REPLACE feature", ""]:
            with self.subTest(phrase=phrase):
                if self.orchestrator.state == ReplaceState.IDLE:
                    self.orchestrator.analyze_impact()
                with self.assertRaises(InvalidConfirmation):
                    self.orchestrator.confirm(True, phrase)
                self.assertEqual(self.orchestrator.state, ReplaceState.IDLE)
        self.assertEqual(self.git.mutating_calls, [])

    def test_declined_aborts_without_mutation(self):
        self.orchestrator.analyze_impact()
        with self.assertRaises(InvalidConfirmation):
            self.orchestrator.confirm(False, "REPLACE main")
        self.assertEqual(self.orchestrator.state, ReplaceState.IDLE)
        self.assertEqual(self.git.mutating_calls, [])

    def test_steps_cannot_be_skipped(self):
        with self.assertRaises(InvalidStateTransition):
            self.orchestrator.create_backup()
        self.orchestrator.analyze_impact()
        with self.assertRaises(InvalidStateTransition):
            self.orchestrator.overwrite_remote()
        self.assertEqual(self.git.mutating_calls, [])

    def test_step_without_impact_raises_state_error(self):
        self.orchestrator.operation.state = ReplaceState.BACKUP_CREATED
        with self.assertRaises(InvalidStateTransition):
            self.orchestrator.overwrite_remote()
        self.assertEqual(self.git.mutating_calls, [])

    def test_full_replace_sequence(self):
        self.confirmed()
        backup = self.orchestrator.create_backup()
        self.orchestrator.overwrite_remote()
        self.orchestrator.reset_local()
        operation = self.orchestrator.finish()

        self.assertEqual(backup, "main-backup-20250304-050607")
        self.assertEqual(
            self.git.mutating_calls,
            [
                ("create_branch", "main-backup-20250304-050607", "aaaa1111"),
                ("push_branch", "main-backup-20250304-050607", "origin"),
                ("force_push_with_lease", "bbbb2222", "main", "aaaa1111", "origin"),
                ("checkout", "main"),
                ("reset_hard", "origin/main"),
            ],
        )
        self.assertEqual(
            operation.completed_steps,
            [
                ReplaceState.BACKUP_CREATED,
                ReplaceState.REMOTE_OVERWRITTEN,
                ReplaceState.LOCAL_RESET,
            ],
        )
        self.assertTrue(operation.is_done)

    def test_backup_push_failure_stops_before_destructive_steps(self):
        self.git.fail_on.add("push_branch")
        self.confirmed()

        with self.assertRaises(BackupFailed) as ctx:
            self.orchestrator.create_backup()

        called = [call[0] for call in self.git.mutating_calls]
        self.assertNotIn("force_push_with_lease", called)
        self.assertNotIn("reset_hard", called)
        self.assertEqual(ctx.exception.last_completed, ReplaceState.IMPACT_ANALYZED.value)
        self.assertEqual(ctx.exception.backup_branch, "main-backup-20250304-050607")
        self.assertEqual(
            self.orchestrator.operation.last_completed_step, ReplaceState.IMPACT_ANALYZED
        )
        with self.assertRaises(InvalidStateTransition):
            self.orchestrator.overwrite_remote()

    def test_backup_branch_creation_failure_reports_no_backup(self):
        self.git.fail_on.add("create_branch")
        self.confirmed()
        with self.assertRaises(BackupFailed) as ctx:
            self.orchestrator.create_backup()
        self.assertIsNone(ctx.exception.backup_branch)
        self.assertEqual(self.git.called("push_branch"), [])

    def test_lease_rejection(self):
        self.git.fail_on.add("force_push_with_lease")
        self.confirmed()
        self.orchestrator.create_backup()

        with self.assertRaises(RemoteRejected) as ctx:
            self.orchestrator.overwrite_remote()

        self.assertEqual(ctx.exception.step, ReplaceState.REMOTE_OVERWRITTEN.value)
        self.assertEqual(ctx.exception.last_completed, ReplaceState.BACKUP_CREATED.value)
        self.assertEqual(ctx.exception.backup_branch, "main-backup-20250304-050607")
        self.assertEqual(self.git.called("reset_hard"), [])
        # Backup is never removed
        self.assertEqual(self.git.called("delete_branch"), [])

    def test_local_reset_failure(self):
        self.git.fail_on.add("checkout")
        self.confirmed()
        self.orchestrator.create_backup()
        self.orchestrator.overwrite_remote()

        with self.assertRaises(LocalUpdateFailed) as ctx:
            self.orchestrator.reset_local()
        self.assertEqual(ctx.exception.last_completed, ReplaceState.REMOTE_OVERWRITTEN.value)

    def test_lease_uses_empty_expectation_when_remote_target_unknown(self):
        git = make_git(remote_branches={"feature"})
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)
        orchestrator.analyze_impact()
        orchestrator.confirm(True, "REPLACE main")
        orchestrator.create_backup()
        orchestrator.overwrite_remote()
        self.assertEqual(
            git.called("force_push_with_lease"),
            [("force_push_with_lease", "bbbb2222", "main", None, "origin")],
        )


class TestReplaceCleanup(unittest.TestCase):
    """Test the optional source cleanup step."""

    def run_to_local_reset(self, git, source="feature", target="main"):
        orchestrator = ReplaceOrchestrator(git, source, target, clock=lambda: FIXED_TIME)
        orchestrator.analyze_impact()
        orchestrator.confirm(True, f"REPLACE {target}")
        orchestrator.create_backup()
        orchestrator.overwrite_remote()
        orchestrator.reset_local()
        return orchestrator

    def test_cleanup_deletes_source_locally_and_remotely(self):
        git = make_git()
        orchestrator = self.run_to_local_reset(git)
        self.assertTrue(orchestrator.cleanup_source(confirmed=True))
        self.assertEqual(git.called("delete_branch"), [("delete_branch", "feature", True)])
        self.assertEqual(
            git.called("delete_remote_branch"), [("delete_remote_branch", "feature", "origin")]
        )
        self.assertEqual(orchestrator.state, ReplaceState.SOURCE_CLEANED)

    def test_cleanup_skipped_without_confirmation(self):
        git = make_git()
        orchestrator = self.run_to_local_reset(git)
        self.assertFalse(orchestrator.cleanup_source(confirmed=False))
        self.assertEqual(git.called("delete_branch"), [])

    def test_protected_source_is_never_cleaned(self):
        git = make_git(
            local_branches={"main", "release"},
            shas={
                "refs/heads/main": "aaaa1111",
                "refs/heads/release": "dddd4444",
                "refs/remotes/origin/release": "dddd4444",
            },
        )
        orchestrator = self.run_to_local_reset(git, source="main", target="release")
        self.assertFalse(orchestrator.can_cleanup)
        self.assertFalse(orchestrator.cleanup_source(confirmed=True))
        self.assertEqual(git.called("delete_branch"), [])

    def test_cleanup_failure_is_non_fatal(self):
        git = make_git(fail_on={"delete_remote_branch"})
        orchestrator = self.run_to_local_reset(git)

        with self.assertRaises(CleanupFailed):
            orchestrator.cleanup_source(confirmed=True)

        operation = orchestrator.finish()
        self.assertTrue(operation.is_done)
        self.assertIsNotNone(operation.cleanup_error)
        self.assertEqual(operation.last_completed_step, ReplaceState.LOCAL_RESET)


class TestReplaceExecute(unittest.TestCase):
    """Test the prompter-driven execution."""

    def test_execute_happy_path_with_cleanup(self):
        git = make_git()
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)
        operation = orchestrator.execute(CannedPrompter(cleanup=True))

        self.assertTrue(operation.is_done)
        self.assertEqual(operation.completed_steps[-1], ReplaceState.SOURCE_CLEANED)

    def test_execute_declined_never_asks_phrase(self):
        git = make_git()
        prompter = CannedPrompter(approve=False)
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)

        with self.assertRaises(InvalidConfirmation):
            orchestrator.execute(prompter)
        self.assertFalse(prompter.asked_phrase)
        self.assertEqual(git.mutating_calls, [])

    def test_execute_wrong_phrase_issues_no_mutation(self):
        git = make_git()
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)

        with self.assertRaises(InvalidConfirmation):
            orchestrator.execute(CannedPrompter(phrase="REPLACE MAIN"))
        self.assertEqual(git.mutating_calls, [])
        self.assertEqual(orchestrator.state, ReplaceState.IDLE)

    def test_execute_records_cleanup_failure(self):
        git = make_git(fail_on={"delete_branch"})
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)
        operation = orchestrator.execute(CannedPrompter(cleanup=True))

        self.assertTrue(operation.is_done)
        self.assertIsInstance(operation.cleanup_error, CleanupFailed)

    def test_to_dict(self):
        git = make_git()
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)
        data = orchestrator.execute(CannedPrompter()).to_dict()
        self.assertEqual(data["state"], "done")
        self.assertEqual(data["backup_branch"], "main-backup-20250304-050607")
        self.assertEqual(data["last_completed_step"], "local_reset")


class TestReplaceSafetyChecks(unittest.TestCase):
    """Refuse replaces that would discard work not covered by the backup."""

    def test_dirty_work_tree_is_refused_before_any_change(self):
        git = make_git(dirty=True)
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)

        with self.assertRaises(UnsafeReplace):
            orchestrator.analyze_impact()
        self.assertEqual(orchestrator.state, ReplaceState.IDLE)
        self.assertEqual(git.mutating_calls, [])

    def test_changes_made_during_replace_block_local_reset(self):
        git = make_git()
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)
        orchestrator.analyze_impact()
        orchestrator.confirm(True, "REPLACE main")
        orchestrator.create_backup()
        orchestrator.overwrite_remote()
        git.dirty = True

        with self.assertRaises(LocalUpdateFailed) as ctx:
            orchestrator.reset_local()

        self.assertEqual(git.called("checkout"), [])
        self.assertEqual(git.called("reset_hard"), [])
        self.assertEqual(ctx.exception.backup_branch, "main-backup-20250304-050607")
        self.assertEqual(orchestrator.state, ReplaceState.REMOTE_OVERWRITTEN)

    def test_stale_local_target_backs_up_remote_tip(self):
        git = make_git(
            shas={
                "refs/heads/main": "aaaa1111",
                "refs/heads/feature": "bbbb2222",
                "refs/remotes/origin/main": "eeee5555",
            },
            ahead_behind={("aaaa1111", "eeee5555"): (0, 1)},
            commits={"bbbb2222..eeee5555": [Commit("eeee5555", "pushed by a teammate")]},
        )
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)

        impact = orchestrator.analyze_impact()
        self.assertEqual(impact.target_sha, "eeee5555")
        self.assertEqual([c.sha for c in impact.commits_lost], ["eeee5555"])

        orchestrator.confirm(True, "REPLACE main")
        orchestrator.create_backup()
        orchestrator.overwrite_remote()
        self.assertEqual(
            git.called("create_branch"),
            [("create_branch", "main-backup-20250304-050607", "eeee5555")],
        )
        self.assertEqual(
            git.called("force_push_with_lease"),
            [("force_push_with_lease", "bbbb2222", "main", "eeee5555", "origin")],
        )

    def test_unpushed_local_target_commits_are_refused(self):
        git = make_git(
            shas={
                "refs/heads/main": "ffff6666",
                "refs/heads/feature": "bbbb2222",
                "refs/remotes/origin/main": "aaaa1111",
            },
            ahead_behind={("ffff6666", "aaaa1111"): (2, 0)},
        )
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)

        with self.assertRaises(UnsafeReplace):
            orchestrator.analyze_impact()
        self.assertIsNone(orchestrator.operation.impact)
        self.assertEqual(git.mutating_calls, [])

    def test_missing_target_is_refused(self):
        git = make_git(local_branches={"feature"}, remote_branches={"feature"})
        orchestrator = ReplaceOrchestrator(git, "feature", "main", clock=lambda: FIXED_TIME)
        with self.assertRaises(UnsafeReplace):
            orchestrator.analyze_impact()


if __name__ == "__main__":
    unittest.main()
