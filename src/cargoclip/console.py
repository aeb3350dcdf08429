"""
Progress and warning output on stderr, coloured with colorama.
"""

import sys

from colorama import Fore, Style, just_fix_windows_console

just_fix_windows_console()

PREFIX = "[cargoclip]"


def report(msg: str, warning: bool = False, done: bool = False) -> None:
    """Print *msg* to stderr, yellow for warnings and green on completion."""
    line = f"{PREFIX} {msg}"
    if warning:
        line = Fore.YELLOW + line + Style.RESET_ALL
    elif done:
        line = Fore.GREEN + line + Style.RESET_ALL
    print(line, file=sys.stderr)
