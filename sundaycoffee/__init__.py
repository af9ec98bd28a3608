"""Sunday Coffee roster state engine."""
