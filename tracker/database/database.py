from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from tracker.config import Config
from tracker.database.models import Base
from tracker.utils.logger import setup_logger

class Database:
    def __init__(self, database_url: str = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.async_session = None
        
    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")
        
        database_url = self.database_url or Config.get_async_database_url()
        
        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )
        
        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        
        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            
        self.logger.info("Database initialized successfully")
    
    @property
    def session_factory(self):
        """Session factory handed to services"""
        if self.async_session is None:
            raise RuntimeError("Database is not initialized")
        return self.async_session
    
    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")
