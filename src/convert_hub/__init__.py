"""convert-hub: convert documents, spreadsheets, images and media files."""
