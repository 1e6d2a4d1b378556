"""hemocount command-line interface."""
