import warnings
from contextlib import contextmanager


@contextmanager
def suppress_all_warnings():
    """Robustly suppress warnings."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        yield


def print_banner(title: str):
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)
