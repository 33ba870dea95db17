"""
Command-line interface for the encrypted file vault.

Provides text-based menu for:
- Creating a directory entry and selecting a user
- File upload with encryption
- File download with decryption and integrity verification
- Sharing files with other users at a permission level
- Listing, revoking and deleting
"""

from pathlib import Path
from typing import List, Optional
import mimetypes

from filevault.accounts.models import User
from filevault.app import VaultApp, create_app
from filevault.config import Settings, configure_logging
from filevault.errors import VaultError
from filevault.sharing.models import PermissionLevel
from filevault.storage.models import EncryptedFile


def print_menu(logged_in: bool = False, username: str = "") -> None:
    print("\n" + "=" * 50)
    if logged_in:
        print(f"  🔐 Encrypted File Vault - Logged in as: {username}")
    else:
        print("  🔐 Encrypted File Vault")
    print("=" * 50)

    if not logged_in:
        print("  1) Sign up")
        print("  2) Log in")
        print("  0) Quit")
    else:
        print("  1) Upload file")
        print("  2) Download file")
        print("  3) List my files")
        print("  4) List shared files")
        print("  5) Share a file")
        print("  6) Revoke a share")
        print("  7) Delete a file")
        print("  8) Storage stats")
        print("  9) Log out")
        print("  0) Quit")
    print("=" * 50)


def _pick(items: List, prompt: str):
    try:
        choice = int(input(prompt)) - 1
    except ValueError:
        print("❌ Invalid input")
        return None
    if choice < 0 or choice >= len(items):
        print("❌ Invalid selection")
        return None
    return items[choice]


def _print_files(files: List[EncryptedFile]) -> None:
    for i, f in enumerate(files, 1):
        print(f"   {i}. {f.original_name} ({f.plaintext_size:,} bytes)")


def _download_dir(user: User) -> Path:
    return Path.home() / "Downloads" / user.username


def handle_signup(app: VaultApp) -> None:
    print("\n📝 Create New Account")
    username = input("Username: ").strip()
    if not username:
        print("❌ Username cannot be empty")
        return
    try:
        user = app.accounts.register(username)
        print(f"✅ Account created: {user.username}")
        print(f"   User ID: {user.user_id}")
    except ValueError as e:
        print(f"❌ Error: {e}")


def handle_login(app: VaultApp) -> Optional[User]:
    print("\n🔑 Login")
    username = input("Username: ").strip()
    user = app.accounts.get_user_by_username(username)
    if user:
        print(f"✅ Welcome back, {user.username}!")
    else:
        print("❌ Unknown user")
    return user


def handle_upload(app: VaultApp, user: User) -> None:
    print("\n📤 Upload File")
    filepath = input("File path: ").strip()
    if not filepath:
        print("❌ File path cannot be empty")
        return

    path = Path(filepath).expanduser()
    if not path.is_file():
        print(f"❌ File not found: {filepath}")
        return

    mime_type, _ = mimetypes.guess_type(path.name)
    try:
        with path.open("rb") as fh:
            entry = app.gateway.upload(user.user_id, path.name, mime_type, fh, source_address="cli")
        print(f"\n✅ File uploaded successfully!")
        print(f"   📄 Filename: {entry.original_name}")
        print(f"   🔑 File ID: {entry.id}")
        print(f"   📊 Size: {entry.plaintext_size:,} bytes")
        print(f"   🔒 Encrypted with {entry.cipher_algorithm.upper()}")
    except (VaultError, ValueError) as e:
        print(f"❌ Upload failed: {e}")


def handle_download(app: VaultApp, user: User) -> None:
    print("\n📥 Download File")
    files = app.gateway.list_owned(user.user_id)
    shared = app.gateway.list_shared_with_me(user.user_id)

    all_files = files + [s.file for s in shared]
    if not all_files:
        print("   No files available")
        return

    print("\nYour files:")
    _print_files(files)
    if shared:
        print("\nShared with you:")
        for i, s in enumerate(shared, len(files) + 1):
            print(f"   {i}. {s.file.original_name} (from {s.counterpart.username}, {s.grant.permission_level.value})")

    selected = _pick(all_files, "\nSelect file number: ")
    if selected is None:
        return

    try:
        result = app.gateway.download(user.user_id, selected.id, source_address="cli")
        target_dir = _download_dir(user)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / result.filename
        target.write_bytes(result.content)
        print(f"\n✅ File downloaded successfully!")
        print(f"   📁 Saved to: {target}")
        print(f"   ✅ Integrity verified (SHA-256)")
    except VaultError as e:
        print(f"❌ Download failed: {e}")


def handle_list_files(app: VaultApp, user: User) -> None:
    print("\n📁 My Files")
    files = app.gateway.list_owned(user.user_id)
    if not files:
        print("   No files uploaded yet")
        return
    for f in files:
        print(f"   • {f.original_name}")
        print(f"     ID: {f.id[:8]}... | Size: {f.plaintext_size:,} bytes | {f.created_at[:10]}")


def handle_list_shared(app: VaultApp, user: User) -> None:
    print("\n📥 Files Shared With Me")
    shared = app.gateway.list_shared_with_me(user.user_id)
    if not shared:
        print("   No files shared with you")
        return
    for s in shared:
        new = "🆕 " if not s.grant.viewed else ""
        print(f"   • {new}{s.file.original_name} (from {s.counterpart.username}, {s.grant.permission_level.value})")
        if s.grant.note:
            print(f"     Note: {s.grant.note}")
        app.gateway.mark_viewed(user.user_id, s.grant.id)


def handle_share(app: VaultApp, user: User) -> None:
    print("\n🔗 Share a File")
    files = app.gateway.list_owned(user.user_id)
    if not files:
        print("   No files to share")
        return

    print("\nYour files:")
    _print_files(files)
    selected = _pick(files, "\nSelect file to share: ")
    if selected is None:
        return

    others = app.accounts.get_other_users(user.user_id)
    if not others:
        print("   No other users to share with")
        return
    print(f"\nAvailable users: {', '.join(u.username for u in others)}")
    names = [n.strip() for n in input("Share with (comma-separated usernames): ").split(",") if n.strip()]
    targets = app.accounts.resolve_usernames(names)
    if not targets:
        print("❌ No known users selected")
        return

    level = input("Permission (view/download/full) [view]: ").strip() or PermissionLevel.VIEW.value
    note = input("Note (optional): ").strip() or None
    try:
        grants = app.gateway.share(user.user_id, selected.id, [t.user_id for t in targets], level, note)
        print(f"✅ Shared with {len(grants)} user(s)")
    except (VaultError, ValueError) as e:
        print(f"❌ Share failed: {e}")


def handle_revoke(app: VaultApp, user: User) -> None:
    print("\n🚫 Revoke a Share")
    shared = app.gateway.list_shared_by_me(user.user_id)
    if not shared:
        print("   You have not shared any files")
        return
    for i, s in enumerate(shared, 1):
        print(f"   {i}. {s.file.original_name} → {s.counterpart.username} ({s.grant.permission_level.value})")
    selected = _pick(shared, "\nSelect share to revoke: ")
    if selected is None:
        return
    try:
        app.gateway.revoke(user.user_id, selected.grant.id)
        print("✅ Share revoked")
    except VaultError as e:
        print(f"❌ Revoke failed: {e}")


def handle_delete(app: VaultApp, user: User) -> None:
    print("\n🗑️ Delete a File")
    files = app.gateway.list_owned(user.user_id)
    if not files:
        print("   No files to delete")
        return

    print("\nYour files:")
    _print_files(files)
    selected = _pick(files, "\nSelect file to delete: ")
    if selected is None:
        return

    confirm = input(f"Delete '{selected.original_name}'? (yes/no): ").strip().lower()
    if confirm != "yes":
        print("   Cancelled")
        return
    try:
        app.gateway.delete(user.user_id, selected.id, source_address="cli")
        print(f"✅ File deleted")
    except VaultError as e:
        print(f"❌ Delete failed: {e}")


def handle_stats(app: VaultApp, user: User) -> None:
    stats = app.gateway.stats(user.user_id)
    print("\n📊 Storage")
    print(f"   Files: {stats.total_files}")
    print(f"   Size: {stats.total_size_bytes:,} bytes ({stats.stored_size_bytes:,} stored)")
    print(f"   Shared with me: {stats.shared_with_me} | Shared by me: {stats.shared_by_me}")


def main(app: Optional[VaultApp] = None) -> None:
    if app is None:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        app = create_app(settings)
    current_user: Optional[User] = None

    print("\n🔐 Encrypted File Vault")
    print("   Encrypted • Shareable • Verified\n")

    actions = {
        "1": handle_upload,
        "2": handle_download,
        "3": handle_list_files,
        "4": handle_list_shared,
        "5": handle_share,
        "6": handle_revoke,
        "7": handle_delete,
        "8": handle_stats,
    }

    try:
        while True:
            print_menu(logged_in=current_user is not None,
                       username=current_user.username if current_user else "")
            choice = input("> ").strip()

            if current_user is None:
                if choice == "1":
                    handle_signup(app)
                elif choice == "2":
                    current_user = handle_login(app)
                elif choice == "0":
                    print("\nGoodbye! 👋")
                    break
                else:
                    print("❌ Invalid choice")
            else:
                if choice in actions:
                    actions[choice](app, current_user)
                elif choice == "9":
                    print(f"\n👋 Logged out from {current_user.username}")
                    current_user = None
                elif choice == "0":
                    print("\nGoodbye! 👋")
                    break
                else:
                    print("❌ Invalid choice")
    finally:
        app.close()


if __name__ == "__main__":
    main()
