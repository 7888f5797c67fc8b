"""histomorph core: data models, configuration and exceptions."""

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
    validate_weight_table,
)
from histomorph.core.defaults import default_config
from histomorph.core.exceptions import (
    AnalysisTimeoutError,
    InvalidConfigurationError,
    InvalidInputError,
    MorphometryError,
    UnknownFeatureError,
)
from histomorph.core.image import (
    ArrayImageSource,
    ImageSource,
    RawImageSource,
    load_image,
)
from histomorph.core.models import Channel, FeatureVector, Image, Region, StainVector
from histomorph.core.serialization import (
    config_from_dict,
    config_to_dict,
    load_config,
    save_config,
)

__all__ = [
    "AnalysisConfig",
    "AnalysisTimeoutError",
    "ArrayImageSource",
    "Channel",
    "CompositeDefinition",
    "config_from_dict",
    "config_to_dict",
    "default_config",
    "FeatureParams",
    "FeatureVector",
    "Image",
    "ImageSource",
    "InvalidConfigurationError",
    "InvalidInputError",
    "load_config",
    "load_image",
    "MorphometryError",
    "PreprocessingParams",
    "RawImageSource",
    "Region",
    "save_config",
    "SegmentationParams",
    "StainVector",
    "SummaryParams",
    "ThresholdBand",
    "ThresholdBands",
    "UnknownFeatureError",
    "validate_weight_table",
    "WeightTable",
]
