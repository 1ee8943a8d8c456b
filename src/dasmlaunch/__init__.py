"""dasmlaunch: open a disassembly or debugging session from a single target string."""

__version__ = "0.1.0"
