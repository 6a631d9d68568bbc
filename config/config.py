from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any

import yaml

STAGE_NAMES = ("voteverifier", "dummy", "aggregator", "statetransition")


@dataclass
class StoreConfig:
    artifacts_dir: Path = field(default_factory=lambda: Path("artifacts"))
    naming: str = "content"
    base_url: Optional[str] = None
    prune_stale: bool = True

    def __post_init__(self):
        self.artifacts_dir = Path(self.artifacts_dir)
        if self.naming not in ("content", "logical"):
            raise ValueError(f"naming must be 'content' or 'logical', got {self.naming!r}")


@dataclass
class BackendConfig:
    kind: str = "reference"
    setup_seed: Optional[str] = None
    executable: str = "circuit-tool"
    timeout: int = 3600

    def __post_init__(self):
        if self.kind not in ("reference", "external"):
            raise ValueError(f"backend must be 'reference' or 'external', got {self.kind!r}")
        if self.timeout <= 0:
            raise ValueError("backend timeout must be positive")


@dataclass
class PipelineConfig:
    votes_per_batch: int = 10
    ballot_vkey: str = "ballotproof/ballot_proof_vkey.json"
    ballot_vkey_sha256: Optional[str] = None
    fetch_timeout: int = 30

    store: StoreConfig = field(default_factory=StoreConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    results_dir: Path = field(default_factory=lambda: Path("results"))
    enable_benchmarking: bool = True
    enable_debug_mode: bool = False

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        self.results_dir = Path(self.results_dir)

        if isinstance(self.votes_per_batch, bool) or not isinstance(self.votes_per_batch, int) \
                or self.votes_per_batch < 1:
            raise ValueError(
                f"votes_per_batch must be a positive integer, got {self.votes_per_batch!r}")
        if self.ballot_vkey_sha256:
            self.ballot_vkey_sha256 = self.ballot_vkey_sha256.lower()

    def stage_dir(self, stage: str) -> Path:
        return self.store.artifacts_dir / stage

    def ensure_directories(self):
        """Create log, results and per-stage artifact directories"""
        for directory in [self.log_dir, self.results_dir] + [self.stage_dir(s) for s in STAGE_NAMES]:
            directory.mkdir(parents=True, exist_ok=True)


def _config_from_dict(config_data: Dict[str, Any]) -> PipelineConfig:
    store_data = config_data.get('store') or {}
    store_config = StoreConfig(
        artifacts_dir=Path(store_data.get('artifacts_dir', 'artifacts')),
        naming=store_data.get('naming', 'content'),
        base_url=store_data.get('base_url'),
        prune_stale=store_data.get('prune_stale', True)
    )

    backend_data = config_data.get('backend') or {}
    backend_config = BackendConfig(
        kind=backend_data.get('kind', 'reference'),
        setup_seed=backend_data.get('setup_seed'),
        executable=backend_data.get('executable', 'circuit-tool'),
        timeout=backend_data.get('timeout', 3600)
    )

    return PipelineConfig(
        votes_per_batch=config_data.get('votes_per_batch', 10),
        ballot_vkey=config_data.get(
            'ballot_vkey', 'ballotproof/ballot_proof_vkey.json'),
        ballot_vkey_sha256=config_data.get('ballot_vkey_sha256'),
        fetch_timeout=config_data.get('fetch_timeout', 30),
        store=store_config,
        backend=backend_config,
        log_dir=Path(config_data.get('log_dir', 'logs')),
        results_dir=Path(config_data.get('results_dir', 'results')),
        enable_benchmarking=config_data.get('enable_benchmarking', True),
        enable_debug_mode=config_data.get('enable_debug_mode', False)
    )


def load_config(config_path: Optional[Path] = None) -> PipelineConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    if not config_path.exists():
        return PipelineConfig()

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ValueError("top level must be a mapping")
        return _config_from_dict(config_data)
    except (yaml.YAMLError, TypeError, ValueError, AttributeError) as e:
        raise ValueError(f"Invalid config file {config_path}: {e}") from e


def save_config(config: PipelineConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")

    config_data = {
        'votes_per_batch': config.votes_per_batch,
        'ballot_vkey': config.ballot_vkey,
        'ballot_vkey_sha256': config.ballot_vkey_sha256,
        'fetch_timeout': config.fetch_timeout,
        'store': {
            'artifacts_dir': str(config.store.artifacts_dir),
            'naming': config.store.naming,
            'base_url': config.store.base_url,
            'prune_stale': config.store.prune_stale
        },
        'backend': {
            'kind': config.backend.kind,
            'setup_seed': config.backend.setup_seed,
            'executable': config.backend.executable,
            'timeout': config.backend.timeout
        },
        'log_dir': str(config.log_dir),
        'results_dir': str(config.results_dir),
        'enable_benchmarking': config.enable_benchmarking,
        'enable_debug_mode': config.enable_debug_mode
    }

    Path(config_path).parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.dump(config_data, f, default_flow_style=False)
