# Copyright 2021-present Kensho Technologies, LLC.
