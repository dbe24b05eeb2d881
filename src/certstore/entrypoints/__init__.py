"""Entry points (outermost layer): the command-line interface."""
