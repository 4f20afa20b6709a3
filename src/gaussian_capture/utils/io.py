"""File I/O helpers shared by the writers and the exporter."""
from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

import numpy as np


def ensure_local_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to create.

    Returns:
        The same path, for chaining.
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def compute_checksum(path: Path, algorithm: str = "sha256") -> str:
    """Compute checksum of a file.

    Args:
        path: File path.
        algorithm: Hash algorithm ('md5', 'sha256', etc.).

    Returns:
        Hex-encoded checksum string.
    """
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def save_json(data: Union[Dict, List], path: Path, indent: int = 2) -> Path:
    """Save data as JSON file.

    Args:
        data: Data to serialize.
        path: Output path.
        indent: JSON indentation (0 for compact).

    Returns:
        Path to saved file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent if indent > 0 else None, default=_json_serializer)
    return path


def load_json(path: Path) -> Union[Dict, List]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _json_serializer(obj: Any) -> Any:
    """Custom JSON serializer for numpy values, enums and dataclasses."""
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, Path):
        return str(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "value"):
        return obj.value
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def save_image(
    image: "np.ndarray",
    path: Path,
    quality: int = 95,
) -> Path:
    """Save an image array to file.

    Args:
        image: Image array (H, W, C) in RGB or (H, W) for grayscale.
        path: Output path (format inferred from extension).
        quality: JPEG quality (1-100).

    Returns:
        Path to saved image.
    """
    try:
        from PIL import Image as PILImage
    except ImportError:
        raise ImportError("Pillow is required for image I/O. Install with: pip install Pillow")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if image.dtype == np.float32 or image.dtype == np.float64:
        # Assume 0-1 range for float
        image = (np.clip(image, 0, 1) * 255).astype(np.uint8)
    elif image.dtype != np.uint8:
        image = image.astype(np.uint8)

    pil_image = PILImage.fromarray(image)

    save_kwargs = {}
    suffix = path.suffix.lower()
    if suffix in (".jpg", ".jpeg"):
        save_kwargs["quality"] = quality
        save_kwargs["optimize"] = True
    elif suffix == ".png":
        save_kwargs["compress_level"] = 6

    pil_image.save(path, **save_kwargs)
    return path


def load_numpy(path: Path) -> "np.ndarray":
    """Load a numpy array from a .npy or .npz file.

    For .npz archives the ``data`` entry is returned, falling back to the
    first stored array.
    """
    path = Path(path)
    if path.suffix == ".npz":
        with np.load(path) as data:
            key = "data" if "data" in data.files else data.files[0]
            return data[key]
    return np.load(path)


def count_files(directory: Path, patterns: Iterable[str]) -> int:
    """Count files in a directory matching any of the glob patterns."""
    directory = Path(directory)
    if not directory.is_dir():
        return 0
    matched = set()
    for pattern in patterns:
        matched.update(directory.glob(pattern))
    return len(matched)
