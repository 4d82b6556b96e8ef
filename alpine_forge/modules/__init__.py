#!/usr/bin/env python3
"""
alpine-forge pipeline modules
Each module exposes a class of the same name, built with (config, context)
and run through execute()
"""
