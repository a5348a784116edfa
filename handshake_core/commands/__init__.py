"""Operations CLI commands."""
