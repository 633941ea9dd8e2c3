# copybench: comparing strategies for copying bytes between streams
#
# Copyright (c) 2026 Dave Jones <dave.jones@canonical.com>
# Copyright (c) 2026 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0

import locale
import gettext


_ = gettext.gettext
ngettext = gettext.ngettext

def init():
    """
    Select the user's locale (falling back to "C" if it is unsupported) and
    bind the message catalog for the package.
    """
    try:
        locale.setlocale(locale.LC_ALL, '')
    except locale.Error:
        locale.setlocale(locale.LC_ALL, 'C')

    gettext.textdomain(__package__)
