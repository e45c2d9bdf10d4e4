"""
Privet keeps secrets inside otherwise readable TOML configuration files.

Fields whose names start with a prefix ('private_' by default) are encrypted
with age and stored as ASCII armored text, while every other field stays in
cleartext so the file can still be read, diffed and reviewed in git.

Encrypt the private fields of a plain configuration file:

\b
    $ export PRIVET_RECIPIENTS="recipients.txt"
    $ privet encrypt config.toml --output config.toml --force

Read it back with an age identity:

\b
    $ privet read config.toml --identity key.txt
    $ privet read config.toml --identity key.txt --path database.private_password

Change a value without ever writing the plaintext to disk:

\b
    $ privet set config.toml database.private_password 'hunter2' -i key.txt -r recipients.txt
    $ privet edit config.toml -i key.txt -r recipients.txt

Check which fields are encrypted, and that they can all be decrypted:

\b
    $ privet inspect config.toml --fields --recipients
    $ privet verify config.toml --check-all --identity key.txt
"""

__version__ = '0.3.0'
