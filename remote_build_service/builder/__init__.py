# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from remote_build_service.builder.base import GenericPlatform
from remote_build_service.builder.ios import IOSPlatform

__all__ = [
    GenericPlatform
]


GenericPlatform.register_backend_class(IOSPlatform)
