"""Application layer: reconciliation, results convergence and session driving."""
