"""A process virtual machine with mailboxes, links, monitors, a cooperative scheduler and sample programs."""

__version__ = "0.1.0"
__all__ = ["machine", "programs"]