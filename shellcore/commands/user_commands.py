"""
User Commands

Account and session commands: su, login, logout, whoami, useradd,
userdel, passwd, groups, groupadd, groupdel and usermod.

Session and authentication errors propagate to the executor, which
reports them under the command's name.

Version: 1.0.0
"""

from typing import Optional

from shellcore.shell.command import (
    ArgValidation,
    Command,
    CommandContext,
    CommandResult,
    CompletionKind,
    EffectType,
    FlagDefinition,
)
from shellcore.shell.modal import OPERATION_CANCELLED


def _is_root(ctx: CommandContext) -> bool:
    return ctx.user == ctx.deps.config.users.root_user


async def _ask_new_password(ctx: CommandContext, username: str) -> CommandResult:
    """
    Prompt for a new password twice.

    Returns:
        A successful result whose output is the password, or the
        failure to report
    """
    modal = ctx.deps.modal
    first = await modal.ask([f"Enter new password for {username}:"], obscured=True)
    if first is None:
        return CommandResult.fail(OPERATION_CANCELLED)
    if not first:
        return CommandResult.fail(f"{ctx.command_name}: Password cannot be empty.")
    second = await modal.ask(["Confirm password:"], obscured=True)
    if second is None:
        return CommandResult.fail(OPERATION_CANCELLED)
    if first != second:
        return CommandResult.fail(f"{ctx.command_name}: Passwords do not match.")
    return CommandResult.ok(first)


# =============================================================================
# Session stack
# =============================================================================

class SuCommand(Command):
    name = 'su'
    description = "Switches to another user, stacking the session."
    help_text = """Usage: su [username] [password]
Start a session as USERNAME (root by default) on top of the current
one. Use 'logout' to return."""
    arg_validation = ArgValidation(max=2)
    completion = CompletionKind.USERS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        users = ctx.deps.users
        target = ctx.args[0] if ctx.args else ctx.deps.config.users.root_user
        password: Optional[str] = ctx.args[1] if len(ctx.args) > 1 else None

        message = await users.su(target, password, ctx.deps.modal)
        if target == ctx.user:
            return CommandResult.ok(message)
        return CommandResult.ok(message, state_modified=True, effect=EffectType.CLEAR_SCREEN)


class LoginCommand(Command):
    name = 'login'
    description = "Logs in as a user, replacing every open session."
    help_text = "Usage: login <username> [password]"
    arg_validation = ArgValidation(min=1, max=2)
    completion = CompletionKind.USERS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        target = ctx.args[0]
        password = ctx.args[1] if len(ctx.args) > 1 else None
        message = await ctx.deps.users.login(target, password, ctx.deps.modal)
        if target == ctx.user:
            return CommandResult.ok(message)
        return CommandResult.ok(message, state_modified=True, effect=EffectType.CLEAR_SCREEN)


class LogoutCommand(Command):
    name = 'logout'
    description = "Closes the current session and returns to the previous one."
    help_text = "Usage: logout"
    arg_validation = ArgValidation(exact=0)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        return CommandResult.ok(ctx.deps.users.logout(), state_modified=True)


class WhoamiCommand(Command):
    name = 'whoami'
    description = "Prints the current user name."
    help_text = "Usage: whoami"
    arg_validation = ArgValidation(exact=0)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        return CommandResult.ok(ctx.user)


# =============================================================================
# Accounts
# =============================================================================

class UseraddCommand(Command):
    name = 'useradd'
    description = "Creates a new user account."
    help_text = """Usage: useradd <username>
Create USERNAME with a same-named primary group and a home directory.
You are prompted for the new password twice."""
    arg_validation = ArgValidation(exact=1)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        users = ctx.deps.users
        username = ctx.args[0]
        users.validate_username(username)
        if users.user_exists(username):
            return CommandResult.fail(f"useradd: User '{username}' already exists.")

        answer = await _ask_new_password(ctx, username)
        if not answer.success:
            return answer
        home = users.register(username, answer.output)
        return CommandResult.ok(
            f"User '{username}' registered. Home directory created at {home}.",
            state_modified=True
        )


class UserdelCommand(Command):
    name = 'userdel'
    description = "Removes a user account."
    help_text = "Usage: userdel [-r] <username>\n  -r    remove the user's home directory too"
    flag_definitions = (FlagDefinition('remove_home', '-r', '--remove'),)
    arg_validation = ArgValidation(exact=1)
    completion = CompletionKind.USERS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        if not _is_root(ctx):
            return CommandResult.fail("userdel: only root can remove users.")
        username = ctx.args[0]
        if not await ctx.deps.modal.confirm([f"Remove user '{username}'?"]):
            return CommandResult.ok(OPERATION_CANCELLED)
        ctx.deps.users.delete_user(username, remove_home=ctx.flags['remove_home'])
        return CommandResult.ok(f"User '{username}' removed.", state_modified=True)


class PasswdCommand(Command):
    name = 'passwd'
    description = "Changes a user password."
    help_text = """Usage: passwd [username]
Change your own password, or any user's password as root."""
    arg_validation = ArgValidation(max=1)
    completion = CompletionKind.USERS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        users = ctx.deps.users
        target = ctx.args[0] if ctx.args else ctx.user
        if not users.user_exists(target):
            return CommandResult.fail(f"passwd: User '{target}' does not exist.")
        if not _is_root(ctx) and target != ctx.user:
            return CommandResult.fail("passwd: You can only change your own password.")

        old_password = None
        if not _is_root(ctx) and users.has_password(target):
            old_password = await ctx.deps.modal.ask(["Enter current password:"], obscured=True)
            if old_password is None:
                return CommandResult.fail(OPERATION_CANCELLED)

        answer = await _ask_new_password(ctx, target)
        if not answer.success:
            return answer
        users.change_password(ctx.user, target, old_password, answer.output)
        return CommandResult.ok(f"Password for '{target}' updated successfully.")


# =============================================================================
# Groups
# =============================================================================

class GroupsCommand(Command):
    name = 'groups'
    description = "Prints the groups a user belongs to."
    help_text = "Usage: groups [username]"
    arg_validation = ArgValidation(max=1)
    completion = CompletionKind.USERS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        target = ctx.args[0] if ctx.args else ctx.user
        if not ctx.deps.users.user_exists(target):
            return CommandResult.fail(f"groups: User '{target}' does not exist.")
        return CommandResult.ok(' '.join(ctx.deps.groups.get_groups_for_user(target)))


class GroupaddCommand(Command):
    name = 'groupadd'
    description = "Creates a new group."
    help_text = "Usage: groupadd <group>"
    arg_validation = ArgValidation(exact=1)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        if not _is_root(ctx):
            return CommandResult.fail("groupadd: only root can add groups.")
        group = ctx.args[0]
        ctx.deps.groups.create_group(group)
        return CommandResult.ok(f"Group '{group}' created.")


class GroupdelCommand(Command):
    name = 'groupdel'
    description = "Deletes a group."
    help_text = "Usage: groupdel <group>\nA group that is some user's primary group cannot be deleted."
    arg_validation = ArgValidation(exact=1)

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        if not _is_root(ctx):
            return CommandResult.fail("groupdel: only root can delete groups.")
        group = ctx.args[0]
        ctx.deps.groups.delete_group(group)
        return CommandResult.ok(f"Group '{group}' deleted.")


class UsermodCommand(Command):
    name = 'usermod'
    description = "Adds a user to, or removes a user from, a group."
    help_text = """Usage: usermod -aG <group> <username>
       usermod -rG <group> <username>
  -aG, -a    add the user to GROUP
  -rG, -r    remove the user from GROUP"""
    flag_definitions = (
        FlagDefinition('append', '-a', '--append', takes_value=True, aliases=('-aG',)),
        FlagDefinition('remove', '-r', '--remove', takes_value=True, aliases=('-rG',)),
    )
    arg_validation = ArgValidation(exact=1)
    completion = CompletionKind.USERS

    async def core_logic(self, ctx: CommandContext) -> CommandResult:
        if not _is_root(ctx):
            return CommandResult.fail("usermod: only root can modify users.")
        if (ctx.flags['append'] is None) == (ctx.flags['remove'] is None):
            return CommandResult.fail("usermod: Usage: usermod -aG|-rG <group> <username>")
        username = ctx.args[0]
        if not ctx.deps.users.user_exists(username):
            return CommandResult.fail(f"usermod: User '{username}' does not exist.")

        groups = ctx.deps.groups
        group = ctx.flags['append'] or ctx.flags['remove']
        if ctx.flags['append']:
            if not groups.add_user_to_group(username, group):
                return CommandResult.ok(f"User '{username}' is already in group '{group}'.")
            return CommandResult.ok(f"Added user '{username}' to group '{group}'.")
        if not groups.remove_user_from_group(username, group):
            return CommandResult.fail(f"usermod: User '{username}' is not in group '{group}'.")
        return CommandResult.ok(f"Removed user '{username}' from group '{group}'.")
