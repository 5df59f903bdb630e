[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "cabernet"
version = "0.1.0"
description = "A small deep learning library with reverse-mode gradients, layers, a loss, optimizers and an IDX dataset reader, built on numpy"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["deep-learning", "neural-network", "autograd", "tensor", "convolution", "mnist"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.setuptools.packages.find]
include = ["cabernet*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
