"""Dataset assembly, transfer-learning training and the end-to-end pipeline."""
