"""Run several wikis side by side, one worker thread each."""

from __future__ import annotations

import logging
import queue
import signal
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from markwiki.config.models import LimitsSettings
from markwiki.errors import MarkwikiError, OperationCancelled, WikiConfigError
from markwiki.wiki import GenerationReport, Wiki
from markwiki.wiki.substitutions import load_string_pairs

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


@dataclass
class WikiOutcome:
    wiki: Wiki
    report: GenerationReport | None = None
    error: BaseException | None = None

    @property
    def failed(self) -> bool:
        """No output at all and at least one failure, or a fatal error."""
        if self.error is not None:
            return True
        return self.report is not None and self.report.produced_nothing and not self.report.ok


@dataclass
class RunSummary:
    outcomes: list[WikiOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        return any(outcome.failed for outcome in self.outcomes)

    @property
    def failures(self) -> list[str]:
        messages: list[str] = []
        for outcome in self.outcomes:
            if outcome.report is not None:
                messages.extend(outcome.report.failures)
        return messages


def load_wiki_list(
    csv_path: str | Path, limits: LimitsSettings | None = None
) -> list[tuple[str, str]]:
    """Read ``source_dir,dest_dir`` lines from *csv_path*."""
    path = Path(csv_path)
    if not path.is_file():
        raise WikiConfigError(f"wiki list '{path}' not found")
    pairs = load_string_pairs(path, limits)
    if not pairs:
        raise WikiConfigError(f"wiki list '{path}' does not name any wikis")
    return [(source.strip(), dest.strip()) for source, dest in pairs]


def combine_errors(errors: Sequence[BaseException]) -> BaseException:
    if len(errors) == 1:
        return errors[0]
    lines = [f"multiple errors occurred ({len(errors)} total):"]
    lines.extend(f"  {i}. {e}" for i, e in enumerate(errors, start=1))
    return MarkwikiError("\n".join(lines))


def install_signal_handlers(cancel: threading.Event) -> dict[int, object]:
    """Set *cancel* on SIGINT or SIGTERM. Returns the previous handlers."""

    def _handle(signum: int, frame: object) -> None:
        logger.info("Received signal %d, stopping", signum)
        cancel.set()

    previous: dict[int, object] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handle)
    return previous


def restore_signal_handlers(previous: dict[int, object]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def generate_wikis(
    wikis: Sequence[Wiki],
    regenerate_all: bool = False,
    clean: bool = False,
    watch: bool = False,
    cancel: threading.Event | None = None,
) -> RunSummary:
    """Generate every wiki concurrently, optionally watching afterwards.

    The first fatal error cancels the remaining wikis. Fatal errors are
    raised once all workers have stopped, combined into one MarkwikiError
    when there are several. Setting *cancel* stops every worker and
    returns a summary with ``cancelled`` set.
    """
    cancel = cancel if cancel is not None else threading.Event()
    outcomes = [WikiOutcome(wiki=wiki) for wiki in wikis]
    errors: queue.Queue[BaseException] = queue.Queue()

    def worker(outcome: WikiOutcome) -> None:
        try:
            outcome.report = outcome.wiki.run(regenerate_all, clean, watch, cancel)
        except OperationCancelled:
            logger.debug("Generation of %s cancelled", outcome.wiki.source_dir)
        except MarkwikiError as e:
            outcome.error = e
            errors.put(e)
        except Exception as e:
            logger.exception("Unexpected failure in wiki %s", outcome.wiki.source_dir)
            outcome.error = e
            errors.put(e)

    threads = [
        threading.Thread(target=worker, args=(outcome,), name=f"markwiki-wiki-{i}", daemon=True)
        for i, outcome in enumerate(outcomes)
    ]
    for thread in threads:
        thread.start()

    first_error: BaseException | None = None
    while any(thread.is_alive() for thread in threads) and not cancel.is_set():
        try:
            first_error = errors.get(timeout=_POLL_INTERVAL)
        except queue.Empty:
            continue
        break

    cancelled = cancel.is_set() and first_error is None
    if first_error is not None or cancelled:
        cancel.set()
    for thread in threads:
        thread.join()

    failures = [outcome.error for outcome in outcomes if outcome.error is not None]
    if failures:
        raise combine_errors(failures)
    return RunSummary(outcomes=outcomes, cancelled=cancelled)
