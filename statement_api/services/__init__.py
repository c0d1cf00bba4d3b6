"""Services package: storage and document analysis collaborators."""
