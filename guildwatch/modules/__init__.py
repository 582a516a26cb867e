"""GuildWatch feature modules."""
