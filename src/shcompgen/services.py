"""Application services that glue detection, synthesis and installation together."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .constants import (
    AGGREGATE_SHELLS,
    CHANGE_STATUSES,
    FAILURE_STATUSES,
    STATIC_SHELLS,
    BatchOutcome,
    CommentStyle,
    FragmentStatus,
    ItemStatus,
    Shell,
)
from .detector import CompletionBinding, DetectionResult, Detector, NotCompletable, Unsupported
from .errors import FragmentFormatError, ProgramNotFoundError, SynthesisError, ValidationError
from .fileio import atomic_write_text
from .fragments import FragmentRegistry
from .installer import CompletionArtifact, DirectoryInstaller, InstalledScript
from .loaders import has_loader_template, instructions, render_loader
from .locations import aggregate_path, completion_script_path, loader_path
from .logging_utils import StructuredLogEvent, get_logger, log_event
from .resolver import ProgramRef, is_on_search_path, iter_search_path_programs, program_name, resolve_program
from .synthesizer import ScriptSynthesizer

if TYPE_CHECKING:
    from pathlib import Path

    from .config import Settings

_FRAGMENT_TO_ITEM: dict[FragmentStatus, ItemStatus] = {
    FragmentStatus.INSERTED: ItemStatus.CREATED,
    FragmentStatus.REPLACED: ItemStatus.REPLACED,
    FragmentStatus.UNCHANGED: ItemStatus.SKIPPED_EXISTS,
    FragmentStatus.NOOP: ItemStatus.SKIPPED_EXISTS,
    FragmentStatus.DELETED: ItemStatus.REMOVED,
}

# Items left out of the report when programs come from enumerating $PATH.
_QUIET_WHEN_ENUMERATING = frozenset({ItemStatus.NOT_COMPLETABLE, ItemStatus.SKIPPED_MISSING})


@dataclass(frozen=True, slots=True)
class ItemResult:
    """Outcome for one program of a batch."""

    item: str
    status: ItemStatus
    message: str = ""
    path: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item": self.item,
            "status": self.status.value,
            "message": self.message,
            "path": None if self.path is None else str(self.path),
        }


def batch_outcome(items: Iterable[ItemResult]) -> BatchOutcome:
    statuses = [item.status for item in items]
    if not statuses:
        return BatchOutcome.NOTHING
    failures = sum(1 for s in statuses if s in FAILURE_STATUSES)
    if failures == len(statuses):
        return BatchOutcome.FAILED
    if failures:
        return BatchOutcome.PARTIAL
    if not any(s in CHANGE_STATUSES for s in statuses):
        return BatchOutcome.NOTHING
    return BatchOutcome.OK


@dataclass(frozen=True, slots=True)
class BatchResult:
    items: tuple[ItemResult, ...] = ()

    @property
    def outcome(self) -> BatchOutcome:
        return batch_outcome(self.items)

    @property
    def changed(self) -> bool:
        return any(item.status in CHANGE_STATUSES for item in self.items)

    def to_dict(self) -> dict[str, Any]:
        return {"outcome": self.outcome.value, "items": [item.to_dict() for item in self.items]}


@dataclass(frozen=True, slots=True)
class DetectionReport:
    """Detector verdict for one requested program."""

    item: str
    result: DetectionResult | None = None
    error: str | None = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return "error"
        if isinstance(self.result, CompletionBinding):
            return "completable"
        if isinstance(self.result, Unsupported):
            return "unsupported"
        return "not-completable"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"item": self.item, "status": self.status}
        result = self.result
        binding = result.binding if isinstance(result, Unsupported) else result
        if isinstance(binding, CompletionBinding):
            data |= {
                "kind": binding.framework_kind.value,
                "completer": binding.completer_command,
                "args": list(binding.completer_args),
                "completee": binding.completee,
                "note": binding.note,
            }
        if isinstance(result, NotCompletable | Unsupported):
            data["reason"] = result.reason
        if self.error is not None:
            data["reason"] = self.error
        return data


@dataclass(frozen=True, slots=True)
class InitReport:
    created_dirs: tuple[Path, ...]
    loader: Path | None
    instructions: str


@dataclass(frozen=True, slots=True)
class ServiceDependencies:
    """Collaborators of :class:`CompletionService`; swapped out in tests."""

    resolve: Callable[[str], ProgramRef]
    enumerate_programs: Callable[[Iterable[str]], Iterator[ProgramRef]]
    on_search_path: Callable[[str], bool]
    detector: Detector
    synthesizer: ScriptSynthesizer
    installer: DirectoryInstaller
    clock: Callable[[], dt.datetime] = field(default=lambda: dt.datetime.now(dt.UTC))

    @classmethod
    def default(cls, *, tool_id: str) -> ServiceDependencies:
        return cls(
            resolve=resolve_program,
            enumerate_programs=lambda exclude: iter_search_path_programs(exclude=exclude),
            on_search_path=is_on_search_path,
            detector=Detector(tool_id=tool_id),
            synthesizer=ScriptSynthesizer(tool_id=tool_id),
            installer=DirectoryInstaller(tool_id=tool_id),
        )


class CompletionService:
    """Batch operations over programs for the selected shell and scope.

    One item failing never aborts the batch; every item gets a status and
    the batch an overall outcome.
    """

    _logger = get_logger(__name__)

    def __init__(self, settings: Settings, *, dependencies: ServiceDependencies | None = None) -> None:
        self.settings = settings
        self._deps = ServiceDependencies.default(tool_id=settings.tool_id) if dependencies is None else dependencies

    @property
    def shell(self) -> Shell:
        return self.settings.shell

    def _event(self, name: str, message: str, level: int = logging.INFO, **context: object) -> None:
        log_event(self._logger, StructuredLogEvent(name=name, message=message, context=context, level=level))

    def _record(self, results: list[ItemResult], result: ItemResult) -> None:
        results.append(result)
        if result.status in FAILURE_STATUSES:
            level = logging.ERROR
        elif result.status in CHANGE_STATUSES:
            level = logging.INFO
        else:
            level = logging.DEBUG
        self._event("batch.item", result.message or result.status.value, level, item=result.item, status=result.status)

    def _programs(self, references: Iterable[str] | None) -> Iterator[ProgramRef | ItemResult]:
        if references is None:
            yield from self._deps.enumerate_programs(self.settings.exclude_programs)
            return
        for reference in references:
            try:
                yield self._deps.resolve(reference)
            except ProgramNotFoundError as err:
                yield ItemResult(item=reference, status=ItemStatus.NOT_FOUND, message=err.reason)

    # --- generate --------------------------------------------------------

    def _generate_one(
        self,
        ref: ProgramRef,
        *,
        replace: bool,
        registry: FragmentRegistry | None,
    ) -> ItemResult:
        detector = self._deps.detector
        try:
            result = detector.detect_program(ref, static=self.shell in STATIC_SHELLS)
        except ValidationError as err:
            return ItemResult(item=ref.reference, status=ItemStatus.FAILED, message=str(err))
        except OSError as err:
            return ItemResult(item=ref.reference, status=ItemStatus.FAILED, message=f"cannot read: {err}")
        if isinstance(result, NotCompletable):
            return ItemResult(item=ref.reference, status=ItemStatus.NOT_COMPLETABLE, message=result.reason)
        if isinstance(result, Unsupported):
            return ItemResult(item=ref.reference, status=ItemStatus.UNSUPPORTED, message=result.reason)

        binding = result
        try:
            text = self._deps.synthesizer.synthesize(binding, self.shell, header=registry is None)
        except (SynthesisError, ValidationError) as err:
            return ItemResult(item=ref.reference, status=ItemStatus.FAILED, message=str(err))

        target = binding.target
        if registry is not None:
            try:
                fstatus = registry.insert(target, text, {"note": binding.note}, replace=replace)
            except (ValidationError, FragmentFormatError, OSError) as err:
                return ItemResult(item=ref.reference, status=ItemStatus.FAILED, message=str(err), path=registry.path)
            return ItemResult(
                item=ref.reference,
                status=_FRAGMENT_TO_ITEM[fstatus],
                message=f"fragment {fstatus.value}",
                path=registry.path,
            )

        try:
            path = completion_script_path(self.settings, target)
            status = self._deps.installer.install(
                CompletionArtifact(program=target, shell=self.shell, path=path, text=text, note=binding.note),
                replace=replace,
            )
        except ValidationError as err:
            return ItemResult(item=ref.reference, status=ItemStatus.FAILED, message=str(err))
        except OSError as err:
            return ItemResult(item=ref.reference, status=ItemStatus.FAILED, message=f"cannot write: {err}")
        message = "use --replace to overwrite" if status is ItemStatus.SKIPPED_EXISTS else binding.note
        return ItemResult(item=ref.reference, status=status, message=message, path=path)

    def generate(
        self,
        programs: Iterable[str] | None = None,
        *,
        replace: bool = False,
        into: Path | None = None,
        comment_style: CommentStyle = CommentStyle.SHELL,
    ) -> BatchResult:
        """Generate completion for ``programs`` (default: everything on ``$PATH``).

        With ``into`` every script becomes a fragment of that one file.
        """
        enumerating = programs is None
        registry = None if into is None else FragmentRegistry(into, comment_style=comment_style)
        self._event("generate.start", "generating completion scripts", shell=self.shell, scope=self.settings.scope)
        results: list[ItemResult] = []
        for ref in self._programs(programs):
            if isinstance(ref, ItemResult):
                self._record(results, ref)
                continue
            item = self._generate_one(ref, replace=replace, registry=registry)
            if enumerating and item.status in _QUIET_WHEN_ENUMERATING:
                continue
            self._record(results, item)
        if registry is None:
            self._refresh_aggregate(results)
        batch = BatchResult(items=tuple(results))
        self._event("generate.finish", "generate finished", outcome=batch.outcome, items=len(results))
        return batch

    # --- remove / clean ----------------------------------------------------

    def _remove_one(self, reference: str, registry: FragmentRegistry | None) -> ItemResult:
        name = program_name(reference)
        if name != reference:
            try:
                name = self._deps.resolve(reference).name
            except ProgramNotFoundError as err:
                return ItemResult(item=reference, status=ItemStatus.NOT_FOUND, message=err.reason)
        try:
            if registry is not None:
                fstatus = registry.delete(name)
                status = ItemStatus.SKIPPED_MISSING if fstatus is FragmentStatus.NOOP else _FRAGMENT_TO_ITEM[fstatus]
                return ItemResult(item=reference, status=status, path=registry.path)
            path = completion_script_path(self.settings, name)
            status = self._deps.installer.uninstall(path)
        except FragmentFormatError as err:
            file = None if registry is None else registry.path
            return ItemResult(item=reference, status=ItemStatus.FAILED, message=str(err), path=file)
        except ValidationError as err:
            return ItemResult(item=reference, status=ItemStatus.FAILED, message=str(err))
        except OSError as err:
            return ItemResult(item=reference, status=ItemStatus.FAILED, message=f"cannot remove: {err}")
        message = "not installed by us" if status is ItemStatus.SKIPPED_NOT_OWNED else ""
        return ItemResult(item=reference, status=status, message=message, path=path)

    def remove(self, programs: Iterable[str] | None = None, *, from_file: Path | None = None) -> BatchResult:
        """Remove our scripts for ``programs`` (default: everything on ``$PATH``).

        Bare names do not have to be on the search path; paths must exist.
        """
        enumerating = programs is None
        if enumerating:
            programs = [ref.name for ref in self._deps.enumerate_programs(self.settings.exclude_programs)]
        registry = None if from_file is None else FragmentRegistry(from_file)
        results: list[ItemResult] = []
        for reference in programs or ():
            item = self._remove_one(reference, registry)
            if enumerating and item.status in _QUIET_WHEN_ENUMERATING:
                continue
            self._record(results, item)
        if registry is None:
            self._refresh_aggregate(results)
        batch = BatchResult(items=tuple(results))
        self._event("remove.finish", "remove finished", outcome=batch.outcome, items=len(results))
        return batch

    def clean(self) -> BatchResult:
        """Remove our scripts whose program is no longer on the search path."""
        results: list[ItemResult] = []
        for script in self.list_installed():
            if self._deps.on_search_path(script.program):
                continue
            try:
                status = self._deps.installer.uninstall(script.path)
            except OSError as err:
                self._record(results, ItemResult(item=script.program, status=ItemStatus.FAILED, message=str(err)))
                continue
            self._record(
                results,
                ItemResult(item=script.program, status=status, message="program not on search path", path=script.path),
            )
        self._refresh_aggregate(results)
        return BatchResult(items=tuple(results))

    def _refresh_aggregate(self, results: list[ItemResult]) -> None:
        """Rewrite the aggregate once per batch if anything changed."""
        if self.shell not in AGGREGATE_SHELLS:
            return
        if not any(item.status in CHANGE_STATUSES for item in results):
            return
        target = aggregate_path(self.settings)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            self._deps.installer.regenerate_aggregate(self.settings.write_dir(), target, now=self._deps.clock())
        except OSError as err:
            self._record(
                results,
                ItemResult(item=target.name, status=ItemStatus.FAILED, message=f"cannot write: {err}", path=target),
            )

    # --- queries -----------------------------------------------------------

    def list_installed(self) -> list[InstalledScript]:
        """Scripts carrying our marker in any directory of the DirectorySet."""
        return self._deps.installer.list_scripts(self.settings.dirs(), self.shell)

    def detect(self, programs: Iterable[str]) -> list[DetectionReport]:
        """Report the detector's verdict for each program without writing anything."""
        reports: list[DetectionReport] = []
        for ref in self._programs(programs):
            if isinstance(ref, ItemResult):
                reports.append(DetectionReport(item=ref.item, error=ref.message))
                continue
            try:
                result = self._deps.detector.detect_program(ref, static=self.shell in STATIC_SHELLS)
            except (ValidationError, OSError) as err:
                reports.append(DetectionReport(item=ref.reference, error=str(err)))
                continue
            reports.append(DetectionReport(item=ref.reference, result=result))
        return reports

    # --- init ----------------------------------------------------------------

    def init(self) -> InitReport:
        """Create completion directories and write the shell's loader script.

        ``OSError`` propagates: there is nothing to continue with when the
        directories cannot be created.
        """
        created: list[Path] = []
        for directory in self.settings.dirs():
            if not directory.is_dir():
                directory.mkdir(parents=True, exist_ok=True)
                created.append(directory)
        loader: Path | None = None
        if has_loader_template(self.shell):
            loader = loader_path(self.settings)
            loader.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(loader, render_loader(self.settings))
        elif self.shell in AGGREGATE_SHELLS:
            loader = aggregate_path(self.settings)
            loader.parent.mkdir(parents=True, exist_ok=True)
            self._deps.installer.regenerate_aggregate(self.settings.write_dir(), loader, now=self._deps.clock())
        self._event("init.done", "initialised completion directories", created=len(created), loader=loader)
        return InitReport(
            created_dirs=tuple(created),
            loader=loader,
            instructions=instructions(self.shell, self.settings.scope, loader, self.settings.dirs()),
        )
