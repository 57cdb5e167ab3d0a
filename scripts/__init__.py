"""Command line entrypoints for the conference tracker."""
