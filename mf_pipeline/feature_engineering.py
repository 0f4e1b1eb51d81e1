"""
Feature Engineering Module

Handles creation of features derived from rating records:
- Sparse user-item rating matrix
- Global rating statistics
- Item popularity (rating counts)

"""

from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy.sparse import csr_matrix

from .data_io import RatingRecord


def build_rating_matrix(records: Sequence[RatingRecord],
                        n_users: Optional[int] = None,
                        n_items: Optional[int] = None) -> csr_matrix:
    """
    Build sparse user-item rating matrix indexed directly by raw ids.

    Args:
        records: Rating records
        n_users: Number of rows (defaults to max user id + 1)
        n_items: Number of columns (defaults to max item id + 1)

    Returns:
        scipy.sparse.csr_matrix of shape (n_users, n_items). Duplicate
        (user, item) pairs keep the last rating.

    Example:
        >>> matrix = build_rating_matrix(records)
        >>> print(matrix.shape)
        (944, 1683)
    """
    user_indices = np.array([r.user_id for r in records], dtype=np.int64)
    item_indices = np.array([r.item_id for r in records], dtype=np.int64)
    ratings = np.array([r.rating for r in records], dtype=np.float32)

    if n_users is None:
        n_users = int(user_indices.max()) + 1 if len(records) else 0
    if n_items is None:
        n_items = int(item_indices.max()) + 1 if len(records) else 0

    # Last write wins on duplicates; csr_matrix would sum them
    last = {}
    for idx, (u, i) in enumerate(zip(user_indices, item_indices)):
        last[(u, i)] = idx
    keep = np.array(sorted(last.values()), dtype=np.int64)

    return csr_matrix(
        (ratings[keep], (user_indices[keep], item_indices[keep])),
        shape=(n_users, n_items),
        dtype=np.float32,
    )


def calculate_global_mean(records: Sequence[RatingRecord]) -> float:
    """Mean rating across all records (0.0 for an empty sequence)."""
    if not records:
        return 0.0
    return float(np.mean([r.rating for r in records]))


def item_rating_counts(matrix: csr_matrix) -> np.ndarray:
    """Number of ratings per item column."""
    return np.asarray(matrix.getnnz(axis=0)).ravel()


def calculate_popular_items(matrix: csr_matrix, n_top: int = 50,
                            min_ratings: int = 1) -> List[int]:
    """
    Rank items by number of ratings.

    Args:
        matrix: User-item rating matrix
        n_top: Maximum number of items to return
        min_ratings: Items with fewer ratings are excluded

    Returns:
        Item ids sorted by rating count (descending, ties by id)
    """
    counts = item_rating_counts(matrix)
    candidates = np.flatnonzero(counts >= max(min_ratings, 1))
    order = np.lexsort((candidates, -counts[candidates]))
    return [int(i) for i in candidates[order][:n_top]]


def user_rated_items(matrix: csr_matrix, user_id: int) -> np.ndarray:
    """Item ids the user has rated."""
    if user_id < 0 or user_id >= matrix.shape[0]:
        return np.array([], dtype=np.int64)
    return matrix.indices[matrix.indptr[user_id]:matrix.indptr[user_id + 1]].astype(np.int64)


def summarize_ratings(records: Sequence[RatingRecord]) -> Dict:
    """Basic dataset statistics for logging and reports."""
    users = {r.user_id for r in records}
    items = {r.item_id for r in records}
    ratings = np.array([r.rating for r in records], dtype=np.float64)
    n_users, n_items = len(users), len(items)
    return {
        "n_ratings": len(records),
        "n_users": n_users,
        "n_items": n_items,
        "min_rating": float(ratings.min()) if len(ratings) else None,
        "max_rating": float(ratings.max()) if len(ratings) else None,
        "global_mean": float(ratings.mean()) if len(ratings) else None,
        "density": len(records) / (n_users * n_items) if n_users and n_items else 0.0,
    }
