# SPDX-License-Identifier: GPL-3.0-or-later

"""Keeps an SSH authorized_keys file in sync with the public keys published
by a set of remote accounts.
"""
