from .mutation_watcher import ChangeKind, MutationWatcher, SubtreeChange

__all__ = ["ChangeKind", "MutationWatcher", "SubtreeChange"]
