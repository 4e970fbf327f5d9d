"""Convert multisample instruments between EXS24 (.exs) and MPC keygroup (.xpm) files."""

from .errors import (  # noqa: F401
    EncodeError,
    LayerPackingError,
    MalformedContainer,
    ParseError,
    SampleError,
    StructuralError,
    UnknownVersion,
)
from .model import (  # noqa: F401
    Envelope,
    EnvelopeModulator,
    Filter,
    FilterType,
    Group,
    Instrument,
    LoopDirection,
    LoopType,
    Modulator,
    PlayLogic,
    SampleData,
    SampleLoop,
    SampleZone,
    TriggerType,
)
from .notify import Diagnostic, Notifier, configure_logging  # noqa: F401
from .exs_codec import ExsOptions, decode_exs, encode_exs  # noqa: F401
from .xpm_codec import XpmOptions, decode_xpm, encode_xpm  # noqa: F401
