# SPDX-License-Identifier: Apache-2.0

"""
Haven API - housing marketplace connecting displaced persons with volunteer hosts.
"""

__version__ = "1.0.0"
