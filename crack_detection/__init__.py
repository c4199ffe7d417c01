"""Concrete crack detection: transfer-learning image classifier.

The package follows a single linear workflow over a directory of labeled
``.jpg`` / ``.png`` images:

1) Corpus scanning (``crack_detection.corpus``)
	- Walk the image root and label every file by its parent directory
	  (``assets/D/CD/...`` -> ``CD``) or by the letters leading its file name.

2) Dataset assembly (``crack_detection.training.common``)
	- Encode labels to dense keys, load raw image bytes, shuffle, and split
	  70/30, then split the held-out part into validation and test sets.

3) Training (``crack_detection.training.common``)
	- A frozen pretrained backbone (ResNet-101 by default) turns every image
	  into a cached bottleneck vector; a linear head is trained on top with
	  per-epoch metrics reporting and early stopping.

4) Persistence and prediction (``crack_detection.predict``)
	- The model is written to ``model/model.zip`` and one held-out image is
	  classified as a smoke test.

Run the whole thing with ``crack-train`` (``crack_detection.train_classifier``).
"""
