"""runlog workers: session numbering and training load aggregation."""
