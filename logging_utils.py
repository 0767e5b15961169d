"""
Logging System for the KB Patch Engine
======================================

Provides colored, structured console logging with phase tracking for patch
batches (parse, preprocess, validate, apply, write).
IMPORTANT: No emojis in console output (Windows encoding issues).
"""

import logging
import time
from typing import Optional, Dict, List
from contextlib import contextmanager
from datetime import datetime
from colorama import Fore, Style, init

# Initialize colorama for Windows
init(autoreset=True)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


# Phase definitions
class Phase:
    """Phase constants for a patch batch"""
    PARSE = "DIRECTIVE_PARSE"
    PREPROCESS = "PREPROCESS"
    VALIDATE = "VALIDATION"
    APPLY = "APPLY"
    WRITE = "WRITE"

# Phase colors
PHASE_COLORS = {
    Phase.PARSE: Fore.CYAN,
    Phase.PREPROCESS: Fore.MAGENTA,
    Phase.VALIDATE: Fore.BLUE,
    Phase.APPLY: Fore.YELLOW,
    Phase.WRITE: Fore.GREEN,
}

# Phase icons (text-based, no emojis for Windows)
PHASE_ICONS = {
    Phase.PARSE: "[PRS]",
    Phase.PREPROCESS: "[PRE]",
    Phase.VALIDATE: "[VAL]",
    Phase.APPLY: "[APL]",
    Phase.WRITE: "[WRT]",
}


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger for console output."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )


class TimingTracker:
    """Track timing for phases and operations"""

    def __init__(self):
        self._timings: Dict[str, float] = {}
        self._start_times: Dict[str, float] = {}

    def start(self, key: str):
        """Start timing for a key"""
        self._start_times[key] = time.time()

    def end(self, key: str) -> float:
        """End timing and return elapsed seconds"""
        if key not in self._start_times:
            return 0.0
        elapsed = time.time() - self._start_times[key]
        self._timings[key] = elapsed
        del self._start_times[key]
        return elapsed

    def get_all(self) -> Dict[str, float]:
        """Get all recorded timings"""
        return self._timings.copy()


class PhaseLogger:
    """
    Logger with phase tracking and visual formatting

    Usage:
        phase_logger = PhaseLogger(batch_id="turn-42", verbose=True)

        with phase_logger.phase(Phase.APPLY, sub_label="9.Inventory.md"):
            phase_logger.info("Applying 3 directives...")
    """

    def __init__(
        self,
        batch_id: str,
        verbose: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        self.batch_id = batch_id
        self.verbose = verbose
        self.logger = logger or logging.getLogger(__name__)
        self.timing_tracker = TimingTracker()
        self._current_phase: Optional[str] = None
        self._phase_stack: List[Optional[str]] = []

    @contextmanager
    def phase(self, phase_name: str, sub_label: Optional[str] = None):
        """
        Context manager for phase tracking with automatic timing

        Example:
            with phase_logger.phase(Phase.WRITE, sub_label="2.Story_Outline.md"):
                ...
        """
        self._enter_phase(phase_name, sub_label)
        try:
            yield self
        finally:
            self._exit_phase(phase_name)

    def _timing_key(self, phase_name: str) -> str:
        return f"phase_{phase_name}_{len(self._phase_stack)}"

    def _enter_phase(self, phase_name: str, sub_label: Optional[str] = None):
        self._phase_stack.append(self._current_phase)
        self._current_phase = phase_name
        self.timing_tracker.start(self._timing_key(phase_name))
        self._print_phase_header(phase_name, sub_label)

    def _exit_phase(self, phase_name: str):
        elapsed = self.timing_tracker.end(self._timing_key(phase_name))
        self._print_phase_footer(phase_name, elapsed)
        self._current_phase = self._phase_stack.pop() if self._phase_stack else None

    def _print_phase_header(self, phase_name: str, sub_label: Optional[str] = None):
        if not self.verbose:
            return
        color = PHASE_COLORS.get(phase_name, Fore.WHITE)
        icon = PHASE_ICONS.get(phase_name, "[???]")
        separator = "=" * 60
        timestamp = datetime.now().strftime("%H:%M:%S")
        sub_str = f" - {sub_label}" if sub_label else ""

        self.logger.info(f"{color}{separator}{Style.RESET_ALL}")
        self.logger.info(
            f"{color}{icon} {phase_name} [{self.batch_id}]{sub_str} [{timestamp}]{Style.RESET_ALL}"
        )
        self.logger.info(f"{color}{separator}{Style.RESET_ALL}")

    def _print_phase_footer(self, phase_name: str, elapsed: float):
        if not self.verbose:
            return
        color = PHASE_COLORS.get(phase_name, Fore.WHITE)
        icon = PHASE_ICONS.get(phase_name, "[???]")
        elapsed_str = f"{elapsed:.3f}s" if elapsed > 0 else "N/A"
        self.logger.info(
            f"{color}{icon} {phase_name} COMPLETED (Elapsed: {elapsed_str}){Style.RESET_ALL}"
        )

    def step(self, phase_name: str, message: str):
        """
        Log one event tagged with phase_name without entering the phase.

        Safe from concurrent coroutines, which must not share the phase stack.
        """
        color = PHASE_COLORS.get(phase_name, Fore.WHITE)
        icon = PHASE_ICONS.get(phase_name, "[???]")
        level = logging.INFO if self.verbose else logging.DEBUG
        self.logger.log(level, f"{color}{icon}{Style.RESET_ALL} [{self.batch_id}] {message}")

    def debug(self, message: str):
        """Log debug message (only if verbose)"""
        if self.verbose:
            self.logger.debug(f"{Fore.WHITE}{Style.DIM}{message}{Style.RESET_ALL}")

    def warning(self, message: str):
        """Log warning message"""
        self.logger.warning(f"{Fore.YELLOW}[WARN] {message}{Style.RESET_ALL}")

    def log_file_result(self, file_path: str, status: str, applied: int, skipped: int):
        """Log the outcome of one file in a batch"""
        if status == "updated":
            color, icon = Fore.GREEN + Style.BRIGHT, "[OK]"
        elif status == "unchanged":
            color, icon = Fore.WHITE, "[--]"
        else:
            color, icon = Fore.RED + Style.BRIGHT, "[X]"
        self.logger.info(
            f"{color}{icon} {file_path}: {status} "
            f"(applied {applied}, skipped {skipped}){Style.RESET_ALL}"
        )

    def log_timing_summary(self):
        """Log timing summary for all phases (only if verbose)"""
        if not self.verbose:
            return

        timings = self.timing_tracker.get_all()
        if not timings:
            return

        total_time = 0.0
        for key, elapsed in sorted(timings.items()):
            phase_name = key.replace("phase_", "").rsplit("_", 1)[0]
            color = PHASE_COLORS.get(phase_name, Fore.WHITE)
            self.logger.info(f"{color}{phase_name:30s} {elapsed:8.3f}s{Style.RESET_ALL}")
            total_time += elapsed
        self.logger.info(f"{Fore.WHITE}{Style.BRIGHT}TOTAL TIME: {total_time:.3f}s{Style.RESET_ALL}")
