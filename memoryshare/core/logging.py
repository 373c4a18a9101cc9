import logging
import sys

# channel loggers; handlers and the gate write to these directly
INCOMING = "memoryshare.incoming"
OUTPUT = "memoryshare.output"
INPUT = "memoryshare.input"
AUDIT = "memoryshare.audit"

VERBOSITY_LEVELS = {
    0: logging.CRITICAL + 10,
    1: logging.CRITICAL,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}


def level_for_verbosity(verbosity: int) -> int:
    verbosity = max(0, min(verbosity, max(VERBOSITY_LEVELS)))
    return VERBOSITY_LEVELS[verbosity]


def configure_logging(verbosity: int = 3) -> None:
    root = logging.getLogger()
    root.setLevel(level_for_verbosity(verbosity))
    if any(getattr(h, "_memoryshare", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler.setFormatter(formatter)
    handler._memoryshare = True  # type: ignore[attr-defined]
    root.addHandler(handler)
