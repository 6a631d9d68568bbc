"""
Utilities for the circuit artifact pipeline: logging setup, hashing,
per-stage resource monitoring and run reports.
"""

import hashlib
import json
import logging
import platform
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import psutil

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'

_MB = 1024 * 1024


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None,
                  log_dir: Path = Path("logs")):
    """Log to a timestamped file under log_dir and to stderr"""
    if log_file is None:
        log_file = log_dir / \
            f"circuit_artifacts_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Repeated calls (tests, re-entrant CLI use) must not stack handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_file), logging.StreamHandler()],
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized. Log file: {log_file}")
    return logger


@dataclass
class StageMetrics:
    operation: str
    started_at: float
    duration_seconds: float
    cpu_percent: float
    rss_mb: float
    failed: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)


class PerformanceMonitor:
    """Collects wall time, CPU and resident memory per pipeline operation"""

    def __init__(self):
        self.metrics: List[StageMetrics] = []
        self.process = psutil.Process()

    def start_operation(self, operation_name: str) -> 'OperationContext':
        return OperationContext(self, operation_name)

    def record(self, metric: StageMetrics):
        self.metrics.append(metric)

    def sample(self) -> Dict[str, float]:
        """Current CPU percentage and RSS in MB, zeros when psutil cannot tell"""
        try:
            return {
                'cpu': self.process.cpu_percent(),
                'rss_mb': self.process.memory_info().rss / _MB,
            }
        except psutil.Error as e:
            logging.debug(f"Performance monitoring error: {e}")
            return {'cpu': 0.0, 'rss_mb': 0.0}

    def get_summary(self) -> Dict[str, Any]:
        """Per-operation statistics over every recorded run"""
        grouped: Dict[str, List[StageMetrics]] = {}
        for metric in self.metrics:
            grouped.setdefault(metric.operation, []).append(metric)

        operations = {}
        for name, runs in grouped.items():
            durations = np.array([m.duration_seconds for m in runs])
            cpu = [m.cpu_percent for m in runs if m.cpu_percent > 0]
            operations[name] = {
                'count': len(runs),
                'failures': sum(1 for m in runs if m.failed),
                'total_duration': float(durations.sum()),
                'avg_duration': float(durations.mean()),
                'min_duration': float(durations.min()),
                'max_duration': float(durations.max()),
                'std_duration': float(durations.std()) if len(runs) > 1 else 0.0,
                'avg_cpu_percent': float(np.mean(cpu)) if cpu else 0.0,
                'max_rss_mb': max(m.rss_mb for m in runs),
            }

        return {
            'total_operations': len(self.metrics),
            'total_duration': sum(op['total_duration'] for op in operations.values()),
            'operations': operations,
        }

    def reset(self):
        self.metrics.clear()


class OperationContext:
    """Context manager recording one StageMetrics entry, also on failure"""

    def __init__(self, monitor: PerformanceMonitor, operation_name: str):
        self.monitor = monitor
        self.operation_name = operation_name
        self.start_time = 0.0
        self.start_sample: Dict[str, float] = {}

    def __enter__(self):
        self.start_time = time.time()
        self.start_sample = self.monitor.sample()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        end = self.monitor.sample()
        cpu_readings = [s['cpu'] for s in (self.start_sample, end) if s['cpu'] > 0]
        self.monitor.record(StageMetrics(
            operation=self.operation_name,
            started_at=self.start_time,
            duration_seconds=time.time() - self.start_time,
            cpu_percent=float(np.mean(cpu_readings)) if cpu_readings else 0.0,
            rss_mb=max(self.start_sample['rss_mb'], end['rss_mb']),
            failed=exc_type is not None,
        ))
        return False


def get_system_info() -> Dict[str, Any]:
    """Host facts stored next to run results"""
    info = {
        'platform': platform.platform(),
        'python_version': platform.python_version(),
        'machine': platform.machine(),
    }
    try:
        info['cpu_count_logical'] = psutil.cpu_count(logical=True)
        info['total_memory_gb'] = round(psutil.virtual_memory().total / _MB / 1024, 2)
    except psutil.Error as e:
        logging.debug(f"System info error: {e}")
    return info


def compute_hash(data: Union[str, bytes, bytearray, memoryview]) -> str:
    """Hex SHA-256 of raw bytes (strings are hashed as UTF-8)"""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(bytes(data)).hexdigest()


def _to_serializable(obj):
    if hasattr(obj, '__dataclass_fields__'):
        return _to_serializable(asdict(obj))
    if isinstance(obj, dict):
        return {str(k): _to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_serializable(item) for item in obj]
    if isinstance(obj, (np.integer, np.floating)):
        return obj.item()
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    return obj


def save_results(results: Dict[str, Any], filepath: Path):
    """Write a JSON run record plus a plain-text summary beside it"""
    filepath.parent.mkdir(parents=True, exist_ok=True)

    record = {
        'metadata': {
            'generated_at': datetime.now().isoformat(),
            'system_info': get_system_info(),
        },
        'data': _to_serializable(results),
    }
    with open(filepath, 'w') as f:
        json.dump(record, f, indent=2, default=str)

    summary_path = filepath.parent / f"{filepath.stem}_summary.txt"
    with open(summary_path, 'w') as f:
        f.write(create_results_summary(record['data']))

    logging.info(f"Results saved to {filepath}")


def create_results_summary(results: Dict[str, Any]) -> str:
    lines = ["=" * 80, "CIRCUIT ARTIFACT PIPELINE - RUN SUMMARY", "=" * 80]
    lines.append(f"Backend: {results.get('backend', '?')}")
    lines.append(f"Votes per batch: {results.get('votes_per_batch', '?')}")
    lines.append("")

    for stage in results.get('stages', []):
        lines.append(f"{stage['stage'].upper()}: {stage['state']}")
        if stage.get('duration_seconds') is not None:
            lines.append(f"  Duration: {format_duration(stage['duration_seconds'])}")
        for name, digest in stage.get('digests', {}).items():
            lines.append(f"  {name}: {digest}")
        if stage.get('error'):
            lines.append(f"  Error: {stage['error']}")
        lines.append("")

    lines.append("=" * 80)
    return "\n".join(lines)


def create_performance_report(monitor: PerformanceMonitor) -> str:
    """Per-operation timing and resource report"""
    summary = monitor.get_summary()

    report = ["=" * 80, "CIRCUIT ARTIFACT PIPELINE - PERFORMANCE REPORT", "=" * 80]
    report.append(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    report.append(f"Total Operations: {summary['total_operations']}")
    report.append(f"Total Duration: {format_duration(summary['total_duration'])}")

    if not summary['operations']:
        report.append("No performance data available.")
    for op_name, op in summary['operations'].items():
        report.append(f"\n{op_name.upper()}:")
        report.append(f"  Executions: {op['count']} ({op['failures']} failed)")
        report.append(f"  Average Time: {format_duration(op['avg_duration'])}")
        report.append(
            f"  Min/Max Time: {op['min_duration']:.4f}s / {op['max_duration']:.4f}s")
        if op['count'] > 1:
            report.append(f"  Std Deviation: {op['std_duration']:.4f}s")
        if op['avg_cpu_percent'] > 0:
            report.append(f"  Average CPU: {op['avg_cpu_percent']:.1f}%")
        if op['max_rss_mb'] > 0:
            report.append(f"  Max RSS (start/end samples): {op['max_rss_mb']:.1f} MB")

    report.append("")
    report.append("=" * 80)
    return "\n".join(report)


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds*1000:.1f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m {secs:.1f}s"
    hours, minutes = divmod(minutes, 60)
    return f"{int(hours)}h {int(minutes)}m {secs:.1f}s"


def format_bytes(size: float) -> str:
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}TB"
