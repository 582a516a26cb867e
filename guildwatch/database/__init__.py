"""GuildWatch persistence schema."""
