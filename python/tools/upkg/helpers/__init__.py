#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Helpers for naming, file-type detection, archive extraction, security
checks and running external commands.
"""
