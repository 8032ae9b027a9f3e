"""Local git client built on the git command line."""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ghall.domain.repository import GitStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandOutcome:
    """Result of a git operation: success flag plus captured diagnostics."""

    success: bool
    stdout: str = ""
    stderr: str = ""


def parse_porcelain(text: str) -> tuple[int, int, bool]:
    """
    Parse ``git status --porcelain`` output.

    Returns:
        Tuple of (staged count, untracked count, worktree dirty flag)
    """
    staged = 0
    untracked = 0
    dirty = False
    for line in text.splitlines():
        if len(line) < 2:
            continue
        index, worktree = line[0], line[1]
        if index == "?":
            untracked += 1
            continue
        if index != " ":
            staged += 1
        if worktree != " ":
            dirty = True
    return staged, untracked, dirty


def parse_left_right(text: str) -> tuple[int, int]:
    """Parse ``git rev-list --left-right --count`` output into (ahead, behind)."""
    parts = text.strip().split()
    if len(parts) != 2:
        return 0, 0
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return 0, 0


class GitClient:
    """Thin wrappers around git invocations used by refreshes and background operations."""

    def __init__(self, git_executable: str = "git"):
        self.git_executable = git_executable
        self.env = os.environ.copy()
        # Background units must never block on a credential prompt
        self.env.setdefault("GIT_TERMINAL_PROMPT", "0")
        self.env.setdefault("GIT_PAGER", "cat")

    def run(self, args: Sequence[str], cwd: Optional[str] = None) -> CommandOutcome:
        """Run git and capture its output; never raises for a non-zero exit."""
        try:
            result = subprocess.run(
                [self.git_executable, *args],
                cwd=cwd,
                check=False,
                text=True,
                capture_output=True,
                env=self.env,
            )
        except OSError as e:
            logger.error(f"Could not run git {' '.join(args)}: {e}")
            return CommandOutcome(success=False, stderr=str(e))
        return CommandOutcome(
            success=result.returncode == 0,
            stdout=result.stdout,
            stderr=result.stderr.strip() or (result.stdout.strip() if result.returncode else ""),
        )

    # --- queries ---

    def status(self, path: str) -> GitStatus:
        """Collect branch, upstream divergence and working tree counts."""
        branch = self.run(["symbolic-ref", "--short", "HEAD"], cwd=path).stdout.strip() or "HEAD"
        has_remote = self.run(["rev-parse", "--abbrev-ref", "@{upstream}"], cwd=path).success

        ahead = behind = 0
        if has_remote:
            counts = self.run(["rev-list", "--left-right", "--count", "HEAD...@{upstream}"], cwd=path)
            if counts.success:
                ahead, behind = parse_left_right(counts.stdout)

        staged = untracked = 0
        dirty = False
        porcelain = self.run(["status", "--porcelain"], cwd=path)
        if porcelain.success:
            staged, untracked, dirty = parse_porcelain(porcelain.stdout)

        return GitStatus(
            branch=branch,
            ahead=ahead,
            behind=behind,
            dirty=dirty,
            untracked=untracked,
            staged=staged,
            has_remote=has_remote,
        )

    def remote_url(self, path: str) -> Optional[str]:
        outcome = self.run(["remote", "get-url", "origin"], cwd=path)
        url = outcome.stdout.strip()
        return url if outcome.success and url else None

    def last_commit_time(self, path: str) -> Optional[int]:
        outcome = self.run(["log", "-1", "--format=%ct"], cwd=path)
        if not outcome.success:
            return None
        try:
            return int(outcome.stdout.strip())
        except ValueError:
            return None

    # --- mutations ---

    def fetch(self, path: str) -> CommandOutcome:
        return self.run(["fetch", "--all", "--prune"], cwd=path)

    def pull(self, path: str) -> CommandOutcome:
        return self.run(["pull", "--ff-only"], cwd=path)

    def push(self, path: str) -> CommandOutcome:
        return self.run(["push"], cwd=path)

    def init(self, path: str) -> CommandOutcome:
        return self.run(["init"], cwd=path)

    def clone(self, url: str, path: str) -> CommandOutcome:
        """Clone ``url`` into ``path``, creating parent directories first."""
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return CommandOutcome(success=False, stderr=str(e))
        return self.run(["clone", url, path])

    def sync(self, path: str) -> CommandOutcome:
        """Fetch, fast-forward pull, then push; diagnostics of every failing step are kept."""
        steps = [self.fetch(path), self.pull(path), self.push(path)]
        if all(step.success for step in steps):
            return CommandOutcome(success=True)
        errors = [step.stderr for step in steps if step.stderr]
        return CommandOutcome(success=False, stderr="\n".join(errors))

    def quicksync(self, path: str) -> CommandOutcome:
        """
        Fetch, rebase onto upstream, stage everything, commit a fixup and push.

        A rebase that stops on conflicts is aborted so the working copy is left
        as it was before the operation.
        """
        fetched = self.fetch(path)
        if not fetched.success:
            return fetched

        if self.run(["rev-parse", "--abbrev-ref", "@{upstream}"], cwd=path).success:
            rebased = self.run(["rebase", "--autostash", "@{upstream}"], cwd=path)
            if not rebased.success:
                self.run(["rebase", "--abort"], cwd=path)
                return CommandOutcome(success=False, stderr=f"Rebase aborted:\n{rebased.stderr}")

        staged = self.run(["add", "-A"], cwd=path)
        if not staged.success:
            return staged

        has_changes = not self.run(["diff", "--cached", "--quiet"], cwd=path).success
        if has_changes:
            committed = self.run(["commit", "--fixup=HEAD"], cwd=path)
            if not committed.success:
                return committed

        return self.push(path)

    def publish(self, path: str, remote_url: str) -> CommandOutcome:
        """Point ``origin`` at ``remote_url`` and push the current branch upstream."""
        if self.remote_url(path) is None:
            configured = self.run(["remote", "add", "origin", remote_url], cwd=path)
        else:
            configured = self.run(["remote", "set-url", "origin", remote_url], cwd=path)
        if not configured.success:
            return configured
        return self.run(["push", "-u", "origin", "HEAD"], cwd=path)

