"""Pytree helper functions.

Keep it minimal: this is not a generic library.
"""

from __future__ import annotations

from typing import Any

import jax
import jax.numpy as jnp


def param_count(params: Any) -> int:
    """Count total number of scalar parameters in a params pytree."""
    return sum(int(x.size) for x in jax.tree_util.tree_leaves(params) if hasattr(x, "size"))


def abstractify_tree(tree: Any) -> Any:
    """Convert a pytree of arrays to ShapeDtypeStruct for Orbax restore.

    Shardings are carried over so restored arrays land where the originals live.
    """
    return jax.tree_util.tree_map(
        lambda x: jax.ShapeDtypeStruct(x.shape, x.dtype, sharding=getattr(x, "sharding", None)),
        tree,
    )


def tree_allclose(a: Any, b: Any, *, rtol: float = 1e-6, atol: float = 1e-6) -> bool:
    """Tree-wise allclose for arrays.

    :param Any a: First pytree.
    :param Any b: Second pytree.
    :param float rtol: Relative tolerance.
    :param float atol: Absolute tolerance.
    :return bool: True if structures match and all arrays are element-wise close.
    """
    la, ta = jax.tree_util.tree_flatten(a)
    lb, tb = jax.tree_util.tree_flatten(b)
    if ta != tb:
        return False
    for xa, xb in zip(la, lb, strict=True):
        if xa.shape != xb.shape or xa.dtype != xb.dtype:
            return False
        if not jnp.allclose(xa, xb, rtol=rtol, atol=atol):
            return False
    return True
