"""todo-sync: reconcile checklist lines in markdown documents with a remote to-do service."""

__version__ = "0.1.0"
