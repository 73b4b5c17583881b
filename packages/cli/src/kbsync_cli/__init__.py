"""kb-sync command line interface."""
