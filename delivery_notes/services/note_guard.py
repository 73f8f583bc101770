"""Pure validation helpers for note line sets."""
from collections import Counter


def find_duplicate_product_ids(lines):
    """
    Return the set of product ids that occur more than once.

    Args:
        lines: Iterable of (product_id, quantity) pairs. Only the product id
            is inspected; the input is never modified.

    Returns:
        set of duplicated product ids (empty when every id is unique)

    Examples:
        find_duplicate_product_ids([(1, 20), (1, 5), (2, 3)]) -> {1}
    """
    counts = Counter(product_id for product_id, _ in lines)
    return {product_id for product_id, seen in counts.items() if seen > 1}
