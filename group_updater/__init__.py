"""group-updater: compile grouped dependency updates into a single change."""
