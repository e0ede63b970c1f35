"""Navigator Keychain Meta information.
   Navigator Keychain keeps passphrase-protected identity keys
   for peer-to-peer nodes.
"""
__title__ = 'navigator_keychain'
__description__ = (
   'Navigator Keychain keeps passphrase-protected identity keys '
   'for peer-to-peer nodes.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/navigator-keychain'
