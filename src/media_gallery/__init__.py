"""Media gallery service package."""
