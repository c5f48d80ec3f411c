# behaviors/__init__.py
# Core components and behavior plugins for the castellan IRC bot.
