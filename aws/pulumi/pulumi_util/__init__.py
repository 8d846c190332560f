#!/usr/bin/env python3

from .util import (
  TTL_SECOND,
  TTL_MINUTE,
  TTL_HOUR,
  jsonify_promise,
  list_of_promises,
  future_func,
  with_tags,
)
