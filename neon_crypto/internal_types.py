#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type aliases used internally by this package"""

from typing import Union, List, Dict, Callable

Jsonable = Union[str, int, float, bool, None, List['Jsonable'], Dict[str, 'Jsonable']]
"""A value that can be serialized with json.dumps()"""

PasswordResolver = Callable[[str], str]
"""A function that returns the password associated with a password name. It should raise
   an exception (typically KeyError) if the name is not known."""

BytesOrText = Union[bytes, bytearray, str]
"""Binary data, or text that will be UTF-8 encoded"""
