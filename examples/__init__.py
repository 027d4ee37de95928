# Copyright 2021-present Kensho Technologies, LLC.
"""Examples directory.

The end-to-end example here is embedded in the README, and is linted along with the package
so that it keeps up with the public API.
"""
