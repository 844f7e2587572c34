"""
Transpile Orchestrator - runs the transpiler over every scripted entity of a project.

Each scripted object (and each project function) becomes one unit. Units run
in their own process so that one crashing or stalled unit can be terminated
without touching its siblings. All bookkeeping (progress counters, file
writes, manifest updates) happens on the orchestrator's thread as units
settle; unit bodies only return an ``EmitResult`` over a pipe.
"""

import hashlib
import json
import logging
import multiprocessing
import os
import re
import time
import traceback
from dataclasses import dataclass, field
from multiprocessing.connection import wait
from typing import Any, Callable, Dict, List, Optional, Tuple

from .ast_builder import ASTBuilder
from .config import TranspilerConfig
from .exceptions import ManifestError, ManifestNotFoundError, OutputDirectoryError, UnitTimeoutError
from .models import EmitResult, TranspileUnit
from .program_emitter import ProgramEmitter

ProgressCallback = Callable[[str], None]
UnitRunner = Callable[[TranspileUnit], str]

_SAFE_STEM = re.compile(r'^[A-Za-z0-9_-]+$')
_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_-]')


def transpile_unit(unit: TranspileUnit) -> str:
    """Build and emit one unit. Runs inside the unit's worker process."""
    scope = None if unit.function_id else unit.object_id
    program = ASTBuilder().build(unit.raw_script, scope, function_id=unit.function_id)
    return ProgramEmitter(indent_size=unit.indent_size).emit(program, scope)


def _run_unit(runner: UnitRunner, unit: TranspileUnit, connection):
    """Worker process entry point: report the unit's outcome over ``connection``."""
    try:
        result = EmitResult.ok(unit.object_id, runner(unit))
    except Exception as e:
        result = EmitResult.failed(unit.object_id, f"{type(e).__name__}: {e}", traceback.format_exc())
    try:
        connection.send(result)
    finally:
        connection.close()


def file_stem(object_id: str) -> str:
    """Return a filesystem-safe stem for ``object_id``."""
    if _SAFE_STEM.match(object_id):
        return object_id
    digest = hashlib.sha1(object_id.encode('utf-8')).hexdigest()[:6]
    return f"{_UNSAFE_CHARS.sub('_', object_id)}_{digest}"


@dataclass
class UnitOutcome:
    """What happened to one unit."""
    object_id: str
    kind: str
    label: str
    success: bool
    output_file: str
    message: Optional[str] = None


@dataclass
class BatchReport:
    """Summary of one orchestrator run.

    Outcomes are keyed by the unit's ``.js`` path, which is unique even when an
    object and a function (or two objects) share an id.
    """
    total: int = 0
    started: int = 0
    processed: int = 0
    outcomes: Dict[str, UnitOutcome] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[str]:
        return [outcome.object_id for outcome in self.outcomes.values() if outcome.success]

    @property
    def failed(self) -> List[str]:
        return [outcome.object_id for outcome in self.outcomes.values() if not outcome.success]

    def outcome(self, object_id: str, kind: str = 'object') -> Optional[UnitOutcome]:
        """Return the first outcome recorded for ``object_id`` of the given kind."""
        for outcome in self.outcomes.values():
            if outcome.object_id == object_id and outcome.kind == kind:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'started': self.started,
            'processed': self.processed,
            'succeeded': self.succeeded,
            'failed': [
                {'id': outcome.object_id, 'kind': outcome.kind, 'message': outcome.message}
                for outcome in self.outcomes.values() if not outcome.success
            ],
        }


@dataclass
class _InFlight:
    unit: TranspileUnit
    process: Any
    connection: Any
    deadline: Optional[float]


class TranspileOrchestrator:
    """
    Fans a project's scripted objects out to isolated worker processes.

    Dispatch is eager and unbounded: every unit is started before the
    orchestrator waits for any of them.
    """

    def __init__(self, config: Optional[TranspilerConfig] = None,
                 on_progress: Optional[ProgressCallback] = None,
                 runner: UnitRunner = transpile_unit):
        """
        Initialize the orchestrator.

        Args:
            config: Transpiler configuration (timeouts, output layout)
            on_progress: Receives one human-readable string per progress event
            runner: Picklable callable turning a unit into source text
        """
        self.logger = logging.getLogger(__name__)
        self.config = config or TranspilerConfig()
        self.on_progress = on_progress
        self.runner = runner
        self._context = multiprocessing.get_context(self.config.start_method)

    def run(self, manifest_path: str) -> BatchReport:
        """
        Transpile the project described by ``manifest_path`` and rewrite the manifest.

        Raises:
            ManifestNotFoundError: If the manifest does not exist
            ManifestError: If the manifest cannot be parsed or written
            OutputDirectoryError: If the output directory cannot be created
        """
        manifest = self.load_manifest(manifest_path)
        report = self.transpile(manifest, os.path.dirname(os.path.abspath(manifest_path)))
        self.save_manifest(manifest_path, manifest)
        self._progress(f"Updated manifest {manifest_path}")
        return report

    def load_manifest(self, manifest_path: str) -> Dict[str, Any]:
        if not os.path.isfile(manifest_path):
            raise ManifestNotFoundError(f"File not found: {manifest_path}", manifest_path)
        try:
            with open(manifest_path, 'r', encoding='utf-8') as f:
                manifest = json.load(f)
        except (OSError, ValueError) as e:
            raise ManifestError(f"Cannot read manifest: {e}", manifest_path) from e
        if not isinstance(manifest, dict):
            raise ManifestError("Manifest root must be an object", manifest_path)
        return manifest

    def save_manifest(self, manifest_path: str, manifest: Dict[str, Any]):
        try:
            with open(manifest_path, 'w', encoding='utf-8') as f:
                json.dump(manifest, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise ManifestError(f"Cannot write manifest: {e}", manifest_path) from e

    def transpile(self, manifest: Dict[str, Any], project_dir: str) -> BatchReport:
        """Transpile every scripted entity of an in-memory manifest, annotating it in place."""
        output_dir = os.path.join(project_dir, self.config.output_dir_name)
        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryError(f"Cannot create output directory: {e}", output_dir) from e

        entries = self._collect_entries(manifest)
        units = [unit for entry, unit in entries]
        report = BatchReport(total=len(units))
        self._progress(f"Transpiling {len(units)} unit(s)")

        in_flight = [self._dispatch(unit, report) for unit in units]
        self._await_all(in_flight, project_dir, report)

        self._annotate(entries, report)
        self._progress(
            f"Done: {len(report.succeeded)} succeeded, {len(report.failed)} failed"
        )
        return report

    def collect_units(self, manifest: Dict[str, Any]) -> List[TranspileUnit]:
        """Build one unit per object with a script and per function with content."""
        return [unit for entry, unit in self._collect_entries(manifest)]

    def _collect_entries(self, manifest: Dict[str, Any]) -> List[Tuple[Dict[str, Any], TranspileUnit]]:
        """Pair every transpilable manifest entry with its unit; output paths are unique."""
        pairs = []
        used_paths = set()
        output_dir = self.config.output_dir_name

        def unique_path(stem: str) -> str:
            path = f"{output_dir}/{stem}.js"
            suffix = 2
            while path in used_paths:
                path = f"{output_dir}/{stem}_{suffix}.js"
                suffix += 1
            used_paths.add(path)
            return path

        for index, obj in enumerate(_entries(manifest, 'objects')):
            script = obj.get('script')
            if not isinstance(script, str) or not script.strip():
                continue
            object_id = str(obj.get('id') or f"object_{index}")
            pairs.append((obj, TranspileUnit(
                object_id=object_id,
                object_name=str(obj.get('name', object_id)),
                raw_script=script,
                output_path=unique_path(file_stem(object_id)),
                indent_size=self.config.indent_size
            )))

        for index, func in enumerate(_entries(manifest, 'functions')):
            content = func.get('content')
            if not isinstance(content, str) or not content.strip():
                continue
            function_id = str(func.get('id') or f"function_{index}")
            pairs.append((func, TranspileUnit(
                object_id=function_id,
                object_name=str(func.get('name', function_id)),
                raw_script=content,
                output_path=unique_path(f"func_{file_stem(function_id)}"),
                function_id=function_id,
                indent_size=self.config.indent_size
            )))

        return pairs

    def _dispatch(self, unit: TranspileUnit, report: BatchReport) -> _InFlight:
        reader, writer = self._context.Pipe(duplex=False)
        process = self._context.Process(
            target=_run_unit,
            args=(self.runner, unit, writer),
            name=f"entry2js-{unit.object_id}",
            daemon=True
        )
        process.start()
        writer.close()

        timeout = self.config.unit_timeout
        report.started += 1
        self._progress(f"[{report.started}/{report.total}] Started {unit.label}")
        return _InFlight(
            unit=unit,
            process=process,
            connection=reader,
            deadline=time.monotonic() + timeout if timeout is not None else None
        )

    def _await_all(self, in_flight: List[_InFlight], project_dir: str, report: BatchReport):
        pending = {entry.connection: entry for entry in in_flight}

        while pending:
            deadlines = [entry.deadline for entry in pending.values() if entry.deadline is not None]
            timeout = max(0.0, min(deadlines) - time.monotonic()) if deadlines else None

            for connection in wait(list(pending), timeout=timeout):
                entry = pending.pop(connection)
                self._settle(entry.unit, self._collect(entry), project_dir, report)

            now = time.monotonic()
            for connection, entry in list(pending.items()):
                if entry.deadline is not None and entry.deadline <= now:
                    del pending[connection]
                    self._terminate(entry)
                    error = UnitTimeoutError(entry.unit.object_id, self.config.unit_timeout)
                    self._settle(entry.unit, EmitResult.failed(entry.unit.object_id, str(error)),
                                 project_dir, report)

    def _collect(self, entry: _InFlight) -> EmitResult:
        try:
            result = entry.connection.recv()
        except EOFError:
            entry.process.join()
            result = EmitResult.failed(
                entry.unit.object_id,
                f"Worker exited with code {entry.process.exitcode} without a result"
            )
        except Exception as e:
            entry.process.join()
            result = EmitResult.failed(entry.unit.object_id, f"Cannot read worker result: {e}",
                                       traceback.format_exc())
        else:
            entry.process.join()
        finally:
            entry.connection.close()
        return result

    def _terminate(self, entry: _InFlight):
        self.logger.warning(f"Terminating {entry.unit.label} after {self.config.unit_timeout}s")
        entry.process.terminate()
        entry.process.join(5)
        if entry.process.is_alive():
            entry.process.kill()
            entry.process.join()
        entry.connection.close()

    def _settle(self, unit: TranspileUnit, result: EmitResult, project_dir: str, report: BatchReport):
        output_file = unit.output_path
        if result.success:
            try:
                _write_text(os.path.join(project_dir, output_file), result.source)
            except OSError as e:
                result = EmitResult.failed(unit.object_id, f"Cannot write {output_file}: {e}",
                                           traceback.format_exc())

        if not result.success:
            output_file = unit.output_path[:-len('.js')] + self.config.error_log_suffix
            self.logger.error(f"Transpiling {unit.label} failed: {result.message}")
            try:
                _write_text(os.path.join(project_dir, output_file), _error_log(unit, result))
            except OSError as e:
                self.logger.error(f"Cannot write error log {output_file}: {e}")

        report.processed += 1
        report.outcomes[unit.output_path] = UnitOutcome(
            object_id=unit.object_id,
            kind=unit.kind,
            label=unit.label,
            success=result.success,
            output_file=output_file,
            message=result.message
        )

        if result.success:
            self._progress(f"[{report.processed}/{report.total}] Transpiled {unit.label} -> {output_file}")
        else:
            self._progress(f"[{report.processed}/{report.total}] Failed {unit.label}: {result.message}")

    def _annotate(self, entries: List[Tuple[Dict[str, Any], TranspileUnit]], report: BatchReport):
        """Point every successfully transpiled entry at its own generated file."""
        for entry, unit in entries:
            outcome = report.outcomes.get(unit.output_path)
            if outcome is not None and outcome.success:
                entry[self.config.script_field] = outcome.output_file

    def _progress(self, message: str):
        self.logger.info(message)
        if self.on_progress is not None:
            self.on_progress(message)


def _entries(manifest: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    entries = manifest.get(key)
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


def _write_text(path: str, text: str):
    with open(path, 'w', encoding='utf-8') as f:
        f.write(text)


def _error_log(unit: TranspileUnit, result: EmitResult) -> str:
    lines = [
        f"Unit: {unit.label}",
        f"Message: {result.message}",
    ]
    if result.trace:
        lines.extend(["", result.trace.rstrip()])
    return "\n".join(lines) + "\n"
