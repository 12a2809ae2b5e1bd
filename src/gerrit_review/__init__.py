# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""Gerrit review workflows over the SSH command interface."""

__version__ = "0.1.0"
