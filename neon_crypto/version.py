#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Version of the neon-crypto package"""

__version__ = "1.0.0"
