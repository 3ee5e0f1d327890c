# SPDX-License-Identifier: Apache-2.0

"""
Route blueprints of the Haven API.
"""
