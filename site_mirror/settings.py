from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

DEFAULT_START_URL = "http://johnmayo.com"
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SiteMirror/1.0)"

REPORT_JSON = "site-crawl-report.json"
REPORT_MD = "site-crawl-report.md"
DOWNLOAD_LOG = "mirror-download-log.json"

ConfigValue = Union[str, int, float, bool, List[str]]


# -------------------- Settings --------------------


@dataclass
class Settings:
    start_url: str = DEFAULT_START_URL
    max_pages: int = 2000
    concurrency: int = 10
    output_dir: str = "crawl-output"
    mirror_dir: Optional[str] = None
    timeout: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir)

    @property
    def mirror_path(self) -> Path:
        if self.mirror_dir:
            return Path(self.mirror_dir)
        return self.output_path / "mirror"

    @property
    def report_path(self) -> Path:
        return self.output_path / REPORT_JSON


# -------------------- Config loader --------------------


def load_config_file(path: str) -> Dict[str, ConfigValue]:
    p = Path(path)
    suf = p.suffix.lower()
    if suf in {".toml", ".tml"}:
        import tomllib

        with open(p, "rb") as f:
            return tomllib.load(f) or {}
    elif suf in {".yaml", ".yml"}:
        import yaml

        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise RuntimeError("Top-level YAML must be a mapping")
            return data
    else:
        raise RuntimeError("Unsupported config format. Use .toml or .yaml")


def flatten_config(cfg: Dict[str, ConfigValue]) -> Dict[str, ConfigValue]:
    """Merge the ``general``, ``crawl`` and ``mirror`` tables into one level."""
    flat = {k: v for k, v in cfg.items() if not isinstance(v, dict)}
    for g in ("general", "crawl", "mirror"):
        if isinstance(cfg.get(g), dict):
            flat.update(cfg[g])
    return {k.replace("-", "_"): v for k, v in flat.items()}
