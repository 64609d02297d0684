"""Models of a small x86 teaching kernel: paging, descriptors, locks, system calls, lottery tickets and user-space helpers."""

__version__ = "0.1.0"