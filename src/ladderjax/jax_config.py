"""
JAX Configuration - MUST be imported before any JAX imports.

This module sets environment variables for JAX configuration including:
- Persistent compilation cache directory
- Minimum compile time threshold for caching
- Suppression of XLA C++ log noise
"""
import os
from pathlib import Path

# Suppress CUDA/XLA C++ warnings; does not affect JAX compilation messages
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

# --- PERSISTENT COMPILATION CACHE ---
# Chunk kernels are re-traced per callback pair, so cache them across sessions
_JAX_CACHE_DIR = Path.home() / ".cache" / "jax" / "ladderjax_cache"
_JAX_CACHE_DIR.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_JAX_CACHE_DIR))
os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")
