"""Workers package: the statement processing pipeline and the cleanup scheduler."""
