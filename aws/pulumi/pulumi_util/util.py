#!/usr/bin/env python3

from typing import Any, Callable, Dict, List, Sequence, Tuple, TypeVar, Union

import json

from pulumi import Output

T = TypeVar('T')

TTL_SECOND: int = 1
TTL_MINUTE: int = TTL_SECOND * 60
TTL_HOUR: int = TTL_MINUTE * 60

def future_func(func: Callable[..., T]) -> Callable[..., Output[T]]:
  """Wrap a synchronous function so that it accepts Pulumi outputs as arguments.

  The wrapped function waits until all of its (possibly future) positional
  arguments have values, then calls func with the realized values.
  """
  def wrapper(*future_args):
    # "pulumi.Output.all(*future_args).apply(lambda args: sync_func(*args))"" is a pattern
    # provided by pulumi. It waits until all promises in future_args have been satisfied,
    # then invokes sync_func with the realized values of all the future_args as *args.
    result = Output.all(*future_args).apply(lambda args: func(*args))
    return result
  return wrapper

def jsonify_promise(future_obj: Output[Any]) -> Output[str]:
  """Convert a Promise object to a Promise to jsonify the result of that Promise.

  An asyncronous (Promise) version of json.dumps() that operates on Pulumi output
  values that have not yet been evaluated. Sorts keys to provide stability of result strings.
  The result is another Pulumi output value that when evaluated will generate the
  json string associated with future_obj

  :param future_obj:     A Pulumi "output" value that is not yet evaluated
  :type future_obj: Pulumi promise
  :return: A Pulumi "output" value that will resolve to the json string corresponding to future_obj
  :rtype: Pulumi Promise
  """
  def gen_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True)

  result = Output.all(future_obj).apply(lambda args: gen_json(*args))
  return result

def list_of_promises(promises: List[Output[Any]]) -> Output[List[Any]]:
  """Converts a list of promises into a promise to return a list of values

  :param promises: A list of promises
  :type promises: List[Output[Any]]
  :return: promise to return list
  :rtype: Output[List[Any]]
  """
  def gen_result(*args: Any) -> List[Any]:
    return list(args)

  return Output.all(*tuple(promises)).apply(lambda args: gen_result(*args))

def with_tags(
      default_tags: Dict[str, str],
      *args: Union[Dict[str, str], Sequence[Tuple[str, str]]],
      **kwargs: str
    ) -> Dict[str, str]:
  result = dict(default_tags)
  result.update(*args, **kwargs)
  return result
