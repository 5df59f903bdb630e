"""Small deep learning library: tensors with reverse-mode gradients, functions, layers, a loss, optimizers and an IDX dataset reader."""

__version__ = "0.1.0"

__all__ = [
    "convolution",
    "criterions",
    "dataset",
    "functional",
    "layers",
    "optimizers",
    "tensor",
]