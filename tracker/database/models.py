from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class PlayerRecord(Base):
    __tablename__ = 'player_records'
    
    id = Column(Integer, primary_key=True)
    tag = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    
    # Progression counters
    exp_level = Column(Integer, default=1)
    trophies = Column(Integer, default=0)
    best_trophies = Column(Integer, default=0)
    attack_wins = Column(Integer, default=0)
    defense_wins = Column(Integer, default=0)
    town_hall_level = Column(Integer, default=1)
    town_hall_weapon_level = Column(Integer, nullable=True)
    war_stars = Column(Integer, default=0)
    donations = Column(Integer, default=0)
    donations_received = Column(Integer, default=0)
    clan_capital_contributions = Column(Integer, default=0)
    role = Column(String(20), nullable=True)
    
    # Builder base
    builder_hall_level = Column(Integer, nullable=True)
    builder_base_trophies = Column(Integer, nullable=True)
    best_builder_base_trophies = Column(Integer, nullable=True)
    
    # At most one row is flagged, see PlayerRecordStore.upsert_as_my_profile
    is_my_profile = Column(Boolean, default=False, nullable=False, index=True)
    
    # Variable-shape collections stored as opaque JSON blobs
    clan_data = Column(Text, nullable=True)
    league_data = Column(Text, nullable=True)
    troops_data = Column(Text, nullable=True)
    heroes_data = Column(Text, nullable=True)
    spells_data = Column(Text, nullable=True)
    hero_equipment_data = Column(Text, nullable=True)
    legends_data = Column(Text, nullable=True)
    
    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    
    __mapper_args__ = {"eager_defaults": True}
    
    def __repr__(self):
        return f"<PlayerRecord(tag='{self.tag}', name='{self.name}', my_profile={self.is_my_profile})>"

class Setting(Base):
    __tablename__ = 'settings'
    
    id = Column(Integer, primary_key=True)
    key = Column(String(100), nullable=False, unique=True)
    value = Column(Text, nullable=False)  # JSON-encoded
    
    # Metadata
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    
    def __repr__(self):
        return f"<Setting(key='{self.key}', value='{self.value}')>"
