from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class ConfigLine:
    key: str | None
    value: str


@dataclass
class ConfigFile:
    """A ``key=value`` file that keeps comments, blank lines and ordering on rewrite."""

    path: Path
    lines: list[ConfigLine] = field(default_factory=list)

    @classmethod
    def load(cls, path: Path) -> "ConfigFile":
        config_file = cls(path=Path(path))
        if not config_file.path.exists():
            return config_file
        for raw in config_file.path.read_text(encoding="utf-8").splitlines():
            if not raw.strip() or raw.lstrip().startswith("#"):
                config_file.lines.append(ConfigLine(key=None, value=raw))
                continue
            if "=" not in raw:
                continue
            key, value = raw.split("=", 1)
            config_file.lines.append(ConfigLine(key=key.strip(), value=value))
        return config_file

    def get(self, key: str, default: str | None = None) -> str | None:
        for line in self.lines:
            if line.key == key:
                return line.value
        return default

    def set(self, key: str, value: str) -> None:
        for line in self.lines:
            if line.key == key:
                line.value = value
                return
        self.lines.append(ConfigLine(key=key, value=value))

    def items(self) -> dict[str, str]:
        return {line.key: line.value for line in self.lines if line.key is not None}

    def ensure_defaults(self, defaults: dict[str, str]) -> bool:
        changed = False
        present = self.items()
        for key, value in defaults.items():
            if key not in present:
                self.set(key, value)
                changed = True
        return changed

    def render(self) -> str:
        rendered = []
        for line in self.lines:
            if line.key is None:
                rendered.append(line.value)
            else:
                rendered.append(f"{line.key}={line.value}")
        return "\n".join(rendered).strip() + "\n"

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.render(), encoding="utf-8")
