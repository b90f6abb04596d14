"""Drive -> Notion -> YouTube video publishing pipeline."""

__version__ = "0.1.0"
