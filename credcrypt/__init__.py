"""
Credcrypt manages encrypted credentials files in a git repository.

Each environment has one encrypted file and one key. The key is read from the
key file, or from $CREDCRYPT_MASTER_KEY when it is set.

\b
    * 'config/credentials.yml.enc' is decrypted with 'config/master.key'.
    * 'config/credentials/<env>.yml.enc' is decrypted with 'config/credentials/<env>.key'.

Show or edit the decrypted credentials:

\b
    $ credcrypt show
    $ credcrypt edit --environment production

Let git show decrypted diffs of credentials files:

\b
    $ credcrypt diff --enroll
    $ git log -p config/credentials.yml.enc

Let git merge conflicting credentials files by merging their plaintext:

\b
    $ credcrypt merge --enroll
    $ git merge feature-branch
"""

__version__ = '1.0.0'
