# Copyright 2021-present Kensho Technologies, LLC.
from .compiler_frontend import AggregatePlan, ChainBuilder, ChainState, compile_query  # noqa
from .validation import validate_query  # noqa
