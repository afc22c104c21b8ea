import multiprocessing as mp
import os
from typing import Any, List

import numpy as np
import torch

from .errors import ConfigurationError


def is_iterable(obj: Any) -> bool:
    """Checks if an object is iterable.

    Args:
        obj: Object to check.

    Returns:
        True if object is iterable, False otherwise.
    """
    try:
        iter(obj)
        return True
    except TypeError:
        return False


def make_var_iterable(x):
    """Utility function to facilitate dealing with user arguments:
    - If None, return an empty list
    - If a string, make it a list of length 1
    - If a list, tuple or set, keep it.

    Args:
        x: Argument supplied by the user

    Returns:
        Iterable argument
    """
    if x is None:
        return []
    if isinstance(x, str) or not is_iterable(x):
        return [x]
    return x


def human_readable_size(size: int, decimal_places: int = 1) -> str:
    """Utility function to convert a size in bytes to a human-readable format.

    Args:
        size: Number of bytes.
        decimal_places: Number of decimal places to use.

    Returns:
        String with human-readable size.
    """
    for unit in ["B", "KB", "MB", "GB", "TB", "PB"]:
        if size < 1024.0 or unit == "PB":
            break
        size /= 1024.0
    if unit == "B":
        size = int(size)
    else:
        size = np.round(size, decimals=decimal_places)
    return f"{size} {unit}"


def get_tensor_memory_amount(t: torch.Tensor) -> int:
    """Returns the size of a tensor's elements in bytes."""
    return t.nelement() * t.element_size()


def process_fragment(node_name: str, fragment: str) -> str:
    """Replaces escaped newlines and tabs in a formatting fragment, and all %s by the node name.

    Args:
        node_name: Name of the node whose output the fragment decorates.
        fragment: The raw fragment from the formatting options.

    Returns:
        The processed fragment.
    """
    fragment = fragment.replace("\\n", "\n")
    fragment = fragment.replace("\\t", "\t")
    if "%s" in fragment:
        fragment = fragment.replace("%s", node_name)
    return fragment


def load_label_file(path: str) -> List[str]:
    """Loads a label mapping file: one label per line, line number is the category index.

    Args:
        path: Path of the label mapping file.

    Returns:
        List of labels.
    """
    if not os.path.isfile(path):
        raise ConfigurationError(f"Label mapping file '{path}' does not exist.")
    labels = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            label = line.strip()
            if label == "":
                continue
            labels.append(label)
    return labels


def make_intermediate_dirs(path: str):
    """Creates the parent directories of a file path if they don't exist yet."""
    parent_dir = os.path.dirname(path)
    if parent_dir != "":
        os.makedirs(parent_dir, exist_ok=True)


def tensor_to_numpy(t: torch.Tensor) -> np.ndarray:
    """Detached CPU copy of a tensor as a numpy array; bfloat16 is upcast since numpy lacks it."""
    t = t.detach().cpu()
    if t.dtype == torch.bfloat16:
        t = t.to(torch.float32)
    return t.numpy()


def warn_parallel():
    """
    Utility function to raise an error if it's being run in parallel processing.
    """
    if mp.current_process().name != "MainProcess":
        raise RuntimeError(
            "It looks like you are using parallel execution; only run "
            "torchscribe in the main process, since output writing "
            "depends on execution order."
        )
