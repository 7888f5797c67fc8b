"""Dict and YAML serialization for AnalysisConfig."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from histomorph.core.config import (
    AnalysisConfig,
    CompositeDefinition,
    FeatureParams,
    PreprocessingParams,
    SegmentationParams,
    SummaryParams,
    ThresholdBand,
    ThresholdBands,
    WeightTable,
    default_known_features,
)
from histomorph.core.exceptions import InvalidConfigurationError
from histomorph.core.models import StainVector


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise InvalidConfigurationError(f"missing required key {key!r} in {where}")
    return data[key]


def _number(value: Any, where: str, kind: type = float) -> Any:
    """Convert a scalar with ``kind``, reporting failures as config errors."""
    if isinstance(value, bool) or value is None:
        raise InvalidConfigurationError(f"{where}: expected a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise InvalidConfigurationError(f"{where}: {e}") from e


def _flag(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise InvalidConfigurationError(f"{where}: expected true or false, got {value!r}")
    return value


def _mapping(data: dict[str, Any], key: str, where: str) -> dict[str, Any]:
    raw = data.get(key)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise InvalidConfigurationError(f"{where} must be a mapping")
    return raw


def _parse_stain_vectors(raw: Any) -> tuple[StainVector, ...]:
    if not isinstance(raw, list):
        raise InvalidConfigurationError("'stain_vectors' must be a list")
    vectors = []
    for i, entry in enumerate(raw):
        if isinstance(entry, dict):
            name = entry.get("name", f"stain_{i}")
            values = _require(entry, "vector", f"stain_vectors[{i}]")
        else:
            name, values = f"stain_{i}", entry
        if not isinstance(values, (list, tuple)) or len(values) != 3:
            raise InvalidConfigurationError(
                f"stain_vectors[{i}] must have exactly 3 components, got {values!r}"
            )
        r, g, b = (_number(v, f"stain_vectors[{i}]") for v in values)
        vectors.append(StainVector(str(name), r, g, b))
    return tuple(vectors)


def _parse_bands(raw: Any, score_range: tuple[float, float], where: str) -> ThresholdBands:
    if not isinstance(raw, list):
        raise InvalidConfigurationError(f"{where!r} must be a list")
    bands = []
    for i, entry in enumerate(raw):
        at = f"{where}[{i}]"
        if not isinstance(entry, dict):
            raise InvalidConfigurationError(f"{at} must be a mapping")
        bands.append(
            ThresholdBand(
                lower_bound=_number(_require(entry, "lower_bound", at), f"{at}.lower_bound"),
                label=str(_require(entry, "label", at)),
                base_confidence=_number(
                    _require(entry, "base_confidence", at), f"{at}.base_confidence",
                ),
            )
        )
    floor, ceiling = score_range
    return ThresholdBands(tuple(bands), floor=floor, ceiling=ceiling)


def _parse_weight_table(raw: Any, name: str) -> WeightTable:
    if not isinstance(raw, list):
        raise InvalidConfigurationError(f"weight table {name!r} must be a list")
    entries = []
    for i, entry in enumerate(raw):
        at = f"weight table {name!r}[{i}]"
        if not isinstance(entry, dict):
            raise InvalidConfigurationError(f"{at} must be a mapping")
        feature = _require(entry, "feature", at)
        weight = _number(_require(entry, "weight", at), f"{at}.weight")
        entries.append((str(feature), weight))
    return WeightTable(tuple(entries))


def _section(data: dict[str, Any], key: str, cls: type) -> Any:
    raw = _mapping(data, key, repr(key))
    try:
        return cls(**raw)
    except TypeError as e:
        raise InvalidConfigurationError(f"invalid {key!r} section: {e}") from e


def config_from_dict(data: dict[str, Any]) -> AnalysisConfig:
    """Build an AnalysisConfig from plain data (e.g. parsed YAML).

    Raises:
        InvalidConfigurationError: If the data is malformed or fails validation.
    """
    if not isinstance(data, dict):
        raise InvalidConfigurationError(
            f"expected a mapping, got {type(data).__name__}"
        )

    raw_range = data.get("score_range", [0.0, 1.0])
    if not isinstance(raw_range, (list, tuple)) or len(raw_range) != 2:
        raise InvalidConfigurationError("'score_range' must be a [floor, ceiling] pair")
    score_range = (
        _number(raw_range[0], "score_range[0]"),
        _number(raw_range[1], "score_range[1]"),
    )

    stain_vectors = _parse_stain_vectors(_require(data, "stain_vectors", "config"))
    shared_bands = _parse_bands(
        _require(data, "threshold_bands", "config"), score_range, "threshold_bands",
    )

    weight_tables = _require(data, "weight_table", "config")
    if not isinstance(weight_tables, dict) or not weight_tables:
        raise InvalidConfigurationError(
            "'weight_table' must be a non-empty mapping of composite name to entries"
        )
    options = _mapping(data, "composites", "'composites'")
    composites = []
    for name, raw_table in weight_tables.items():
        opts = _mapping(options, name, f"composites.{name}")
        bands = None
        if "threshold_bands" in opts:
            bands = _parse_bands(
                opts["threshold_bands"], score_range, f"composites.{name}.threshold_bands",
            )
        composites.append(
            CompositeDefinition(
                name=str(name),
                weights=_parse_weight_table(raw_table, str(name)),
                renormalize=_flag(
                    opts.get("renormalize", False), f"composites.{name}.renormalize",
                ),
                bands=bands,
            )
        )
    unknown_options = set(options) - set(weight_tables)
    if unknown_options:
        raise InvalidConfigurationError(
            f"options given for undefined composites: {sorted(unknown_options)}"
        )

    image = _mapping(data, "image", "'image'")
    secondary = data.get("secondary_channel", 1 if len(stain_vectors) > 1 else None)
    known = data.get("known_features")
    if known is not None and (
        not isinstance(known, (list, tuple)) or not all(isinstance(f, str) for f in known)
    ):
        raise InvalidConfigurationError("'known_features' must be a list of names")

    return AnalysisConfig(
        stain_vectors=stain_vectors,
        composites=tuple(composites),
        threshold_bands=shared_bands,
        segmentation=_section(data, "segmentation", SegmentationParams),
        features=_section(data, "features", FeatureParams),
        summary=_section(data, "summary", SummaryParams),
        preprocessing=_section(data, "preprocessing", PreprocessingParams),
        min_width=_number(image.get("min_width", 100), "image.min_width", int),
        min_height=_number(image.get("min_height", 100), "image.min_height", int),
        od_epsilon=_number(data.get("od_epsilon", 1e-6), "od_epsilon"),
        od_scale=_number(data.get("od_scale", 1.0), "od_scale"),
        segmentation_channel=_number(
            data.get("segmentation_channel", 0), "segmentation_channel", int,
        ),
        secondary_channel=(
            None if secondary is None
            else _number(secondary, "secondary_channel", int)
        ),
        confidence_adjustment=_number(
            data.get("confidence_adjustment", 0.1), "confidence_adjustment",
        ),
        min_regions=_number(data.get("min_regions", 1), "min_regions", int),
        known_features=None if known is None else frozenset(known),
    )


def _bands_to_list(bands: ThresholdBands) -> list[dict[str, Any]]:
    return [
        {"lower_bound": b.lower_bound, "label": b.label, "base_confidence": b.base_confidence}
        for b in bands
    ]


def config_to_dict(config: AnalysisConfig) -> dict[str, Any]:
    """Convert an AnalysisConfig to YAML-friendly plain data."""
    seg = config.segmentation
    feat = config.features
    summ = config.summary
    pre = config.preprocessing
    data: dict[str, Any] = {
        "stain_vectors": [
            {"name": v.name, "vector": [v.r, v.g, v.b]} for v in config.stain_vectors
        ],
        "segmentation": {
            "min_intensity": seg.min_intensity,
            "min_area": seg.min_area,
            "max_area": seg.max_area,
            "connectivity": seg.connectivity,
        },
        "features": {
            "min_shape_pixels": feat.min_shape_pixels,
            "ray_step_degrees": feat.ray_step_degrees,
            "edge_delta": feat.edge_delta,
            "mitotic_radius": feat.mitotic_radius,
            "mitotic_intensity": feat.mitotic_intensity,
            "mitotic_rim_intensity": feat.mitotic_rim_intensity,
            "mitotic_dense_fraction": feat.mitotic_dense_fraction,
            "mitotic_rim_fraction": feat.mitotic_rim_fraction,
        },
        "summary": {
            "window_radius": summ.window_radius,
            "density_min_fraction": summ.density_min_fraction,
            "cytoplasm_radius": summ.cytoplasm_radius,
            "cytoplasm_threshold": summ.cytoplasm_threshold,
        },
        "preprocessing": {
            "median_filter_size": pre.median_filter_size,
            "contrast_stretch": pre.contrast_stretch,
        },
        "weight_table": {
            c.name: [{"feature": f, "weight": w} for f, w in c.weights]
            for c in config.composites
        },
        "threshold_bands": _bands_to_list(config.threshold_bands),
        "score_range": [config.threshold_bands.floor, config.threshold_bands.ceiling],
        "image": {"min_width": config.min_width, "min_height": config.min_height},
        "od_epsilon": config.od_epsilon,
        "od_scale": config.od_scale,
        "segmentation_channel": config.segmentation_channel,
        "secondary_channel": config.secondary_channel,
        "confidence_adjustment": config.confidence_adjustment,
        "min_regions": config.min_regions,
    }

    if config.known_features != default_known_features():
        data["known_features"] = sorted(config.known_features)

    composite_options: dict[str, Any] = {}
    for c in config.composites:
        opts: dict[str, Any] = {}
        if c.renormalize:
            opts["renormalize"] = True
        if c.bands is not None:
            opts["threshold_bands"] = _bands_to_list(c.bands)
        if opts:
            composite_options[c.name] = opts
    if composite_options:
        data["composites"] = composite_options
    return data


def load_config(path: Path) -> AnalysisConfig:
    """Load and validate an AnalysisConfig from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        InvalidConfigurationError: If the YAML is malformed or invalid.
    """
    path = Path(path)
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InvalidConfigurationError(f"cannot parse {path}: {e}") from e
    if data is None:
        raise InvalidConfigurationError(f"empty configuration file {path}")
    return config_from_dict(data)


def save_config(config: AnalysisConfig, path: Path) -> None:
    """Write an AnalysisConfig to a YAML file."""
    with open(Path(path), "w") as f:
        yaml.dump(config_to_dict(config), f, default_flow_style=False, sort_keys=False)
