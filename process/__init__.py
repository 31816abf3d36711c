from .core import ProcessHandle, ProcessState, Role

__all__ = ["ProcessHandle", "ProcessState", "Role"]
