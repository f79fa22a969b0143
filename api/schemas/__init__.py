from .cards import (
    AspectIn,
    AspectsIn,
    BirthIn,
    CardOut,
    CatalogResponse,
    DailyCardRequest,
    DailyCardResponse,
    FeaturesIn,
    LabelIn,
    ScoreOut,
    SelectionFlags,
)
