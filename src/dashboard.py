"""
Streamlit dashboard for browsing traced golf shots.
"""

import json
from typing import Dict, List, Tuple

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from database import ShotDatabase


SHAPE_COLORS = {
    'Straight': 'blue',
    'Slice': 'orange',
    'Hook': 'purple',
    'default': 'gray'
}


def _label(value, default: str) -> str:
    """Text for a nullable column value; pandas reads missing text as NaN."""
    if isinstance(value, str) and value:
        return value
    return default


def load_trajectory_points(trajectory_data) -> List[Tuple[float, float, int]]:
    """
    Parse the trajectory_data column.

    Args:
        trajectory_data: JSON string written by the shot processor (or None)

    Returns:
        List of (x, y, timestamp_ms); empty for missing or malformed data
    """
    if not trajectory_data or not isinstance(trajectory_data, str):
        return []

    try:
        data = json.loads(trajectory_data)
    except ValueError:
        return []

    if not isinstance(data, dict):
        return []

    points = []
    for point in data.get('points') or []:
        if isinstance(point, (list, tuple)) and len(point) >= 3:
            points.append((float(point[0]), float(point[1]), int(point[2])))
    return points


def shape_counts(shots_df: pd.DataFrame) -> Dict[str, int]:
    """Number of shots per shot shape."""
    if shots_df.empty or 'shot_shape' not in shots_df:
        return {}

    counts = shots_df['shot_shape'].dropna().value_counts()
    return {shape: int(count) for shape, count in counts.items()}


def create_trajectory_overlay(shots_df: pd.DataFrame) -> go.Figure:
    """
    Overlay shot traces in camera pixel space.

    Every trace is drawn as seen on screen (y axis pointing down), colored by
    shot shape, with the first and last tracked points highlighted.

    Args:
        shots_df: DataFrame containing shot data with trajectory_data

    Returns:
        Plotly figure object
    """
    fig = go.Figure()
    max_width = 0
    max_height = 0

    for _, shot in shots_df.iterrows():
        points = load_trajectory_points(shot.get('trajectory_data'))
        if len(points) < 2:
            continue

        x_coords = [p[0] for p in points]
        y_coords = [p[1] for p in points]

        if pd.notna(shot.get('frame_width')):
            max_width = max(max_width, int(shot['frame_width']))
        if pd.notna(shot.get('frame_height')):
            max_height = max(max_height, int(shot['frame_height']))

        shape = _label(shot.get('shot_shape'), 'default')
        color = SHAPE_COLORS.get(shape, SHAPE_COLORS['default'])
        distance = f"{int(shot['distance_yards'])} yds" if pd.notna(shot.get('distance_yards')) else "N/A"

        fig.add_trace(go.Scatter(
            x=x_coords,
            y=y_coords,
            mode='lines+markers',
            line=dict(color=color, width=3),
            marker=dict(size=5, color=color),
            name=f"Shot {shot['shot_number']} ({shape})",
            hovertemplate=f"<b>Shot {shot['shot_number']}</b><br>" +
                          f"Distance: {distance}<br>" +
                          f"Shape: {shape}<extra></extra>"
        ))

        # First tracked point (tee)
        fig.add_trace(go.Scatter(
            x=[x_coords[0]],
            y=[y_coords[0]],
            mode='markers',
            marker=dict(size=12, color='lime', line=dict(width=2, color='darkgreen')),
            showlegend=False,
            hoverinfo='skip'
        ))

        # Last tracked point
        fig.add_trace(go.Scatter(
            x=[x_coords[-1]],
            y=[y_coords[-1]],
            mode='markers',
            marker=dict(size=12, color='red', line=dict(width=2, color='darkred')),
            showlegend=False,
            hoverinfo='skip'
        ))

    xaxis = dict(title="Screen X (px)", showgrid=True, gridcolor='lightgray')
    yaxis = dict(title="Screen Y (px)", showgrid=True, gridcolor='lightgray', autorange='reversed')
    if max_width and max_height:
        xaxis['range'] = [0, max_width]
        yaxis.pop('autorange')
        yaxis['range'] = [max_height, 0]

    fig.update_layout(
        title="Shot Traces Overlay",
        xaxis=xaxis,
        yaxis=yaxis,
        plot_bgcolor='white',
        height=600,
        showlegend=True,
        hovermode='closest'
    )

    return fig


def create_dispersion_chart(shots_df: pd.DataFrame) -> go.Figure:
    """
    Polar view of where shots went: compass direction against carry.

    Args:
        shots_df: DataFrame with direction_deg and distance_yards columns

    Returns:
        Plotly figure with one trace per shot shape
    """
    fig = go.Figure()
    if shots_df.empty or 'direction_deg' not in shots_df or 'distance_yards' not in shots_df:
        return fig

    plotted = shots_df.dropna(subset=['direction_deg', 'distance_yards'])
    for shape, group in plotted.groupby(plotted['shot_shape'].fillna('default')):
        fig.add_trace(go.Scatterpolar(
            r=group['distance_yards'],
            theta=group['direction_deg'],
            mode='markers',
            marker=dict(size=10, color=SHAPE_COLORS.get(shape, SHAPE_COLORS['default'])),
            name=shape
        ))

    fig.update_layout(
        title="Shot Dispersion",
        polar=dict(angularaxis=dict(rotation=90, direction='clockwise')),
        height=500
    )
    return fig


def filter_shots(sessions_df: pd.DataFrame, shots_df: pd.DataFrame,
                 session_label: str) -> pd.DataFrame:
    """Shots of the session picked in the sidebar ("All Sessions" keeps everything)."""
    labels = session_labels(sessions_df)
    if session_label not in labels:
        return shots_df

    session_id = sessions_df.iloc[labels.index(session_label)]['session_id']
    return shots_df[shots_df['session_id'] == session_id]


def session_labels(sessions_df: pd.DataFrame) -> List[str]:
    return [
        f"{row['date']} - {_label(row['course'], 'Unknown')} (#{row['session_id']})"
        for _, row in sessions_df.iterrows()
    ]


def load_data(db_path: str = "data/golf_shots.db"):
    """Sessions and shots as DataFrames; each shot carries its session date and course."""
    with ShotDatabase(db_path) as db:
        sessions = db.get_all_sessions()
        rows = []
        for session in sessions:
            for shot in db.get_session_shots(session['session_id']):
                shot['session_date'] = session['date']
                shot['course'] = session['course']
                rows.append(shot)

    return pd.DataFrame(sessions), pd.DataFrame(rows)


def render_metrics(shots_df: pd.DataFrame):
    carried = shots_df['distance_yards'].dropna()
    counts = shape_counts(shots_df)

    total, average, longest, straight = st.columns(4)
    total.metric("Shots Traced", len(shots_df))
    average.metric("Avg Carry", f"{carried.mean():.0f} yds" if not carried.empty else "N/A")
    longest.metric("Longest", f"{carried.max():.0f} yds" if not carried.empty else "N/A")
    if counts:
        straight.metric("Straight Shots", f"{100.0 * counts.get('Straight', 0) / sum(counts.values()):.0f}%")
    else:
        straight.metric("Straight Shots", "N/A")


def render_overview(sessions_df: pd.DataFrame, shots_df: pd.DataFrame):
    left, right = st.columns(2)

    with left:
        carried = shots_df[shots_df['distance_yards'].notna()]
        if carried.empty:
            st.info("No carry data yet")
        else:
            fig = px.histogram(carried, x='distance_yards', nbins=20,
                               labels={'distance_yards': 'Carry (yards)'},
                               title="Carry Distances")
            fig.update_layout(showlegend=False)
            st.plotly_chart(fig, use_container_width=True)

    with right:
        counts = shape_counts(shots_df)
        if counts:
            fig = px.pie(names=list(counts), values=list(counts.values()),
                         color=list(counts), color_discrete_map=SHAPE_COLORS,
                         title="Shot Shapes")
            st.plotly_chart(fig, use_container_width=True)
        else:
            st.info("No shape data yet")

    st.plotly_chart(create_dispersion_chart(shots_df), use_container_width=True)

    if not sessions_df.empty:
        st.subheader("Sessions")
        table = sessions_df[['date', 'course', 'total_shots', 'avg_distance']].copy()
        table['avg_distance'] = table['avg_distance'].round(1)
        st.dataframe(
            table,
            column_config={
                'date': 'Date',
                'course': 'Course',
                'total_shots': st.column_config.NumberColumn('Shots', format="%d"),
                'avg_distance': st.column_config.NumberColumn('Avg Carry', format="%.1f yds")
            },
            hide_index=True,
            use_container_width=True
        )


def render_shot_table(shots_df: pd.DataFrame):
    columns = ['shot_id', 'session_date', 'shot_number', 'distance_yards', 'shot_shape',
               'direction_deg', 'recommended_club', 'trace_effect', 'trail_points']
    table = shots_df[[c for c in columns if c in shots_df]].sort_values('shot_id', ascending=False)

    st.dataframe(
        table,
        column_config={
            'shot_id': 'Shot ID',
            'session_date': 'Date',
            'shot_number': 'Shot #',
            'distance_yards': st.column_config.NumberColumn('Carry (yds)', format="%d"),
            'shot_shape': 'Shape',
            'direction_deg': st.column_config.NumberColumn('Direction', format="%.1f°"),
            'recommended_club': 'Club',
            'trace_effect': 'Effect',
            'trail_points': 'Points'
        },
        hide_index=True,
        use_container_width=True
    )


def main():
    st.set_page_config(page_title="Golf Shot Tracer", page_icon="⛳", layout="wide")
    st.title("⛳ Golf Shot Tracer")

    sessions_df, shots_df = load_data()

    if shots_df.empty:
        st.info("No traced shots yet.")
        st.markdown("""
        1. Film a swing with the ball visible on the tee
        2. Run `golf-shot-tracer --video your_swing.mp4` (or `--camera 0`)
        3. Reload this page
        """)
        return

    choice = st.sidebar.selectbox("Session", ["All Sessions"] + session_labels(sessions_df))
    shots = filter_shots(sessions_df, shots_df, choice)

    render_metrics(shots)
    st.markdown("---")

    overview, traces, details = st.tabs(["📊 Overview", "🎯 Traces", "📋 Shots"])
    with overview:
        render_overview(sessions_df, shots)
    with traces:
        st.plotly_chart(create_trajectory_overlay(shots), use_container_width=True)
    with details:
        render_shot_table(shots)


if __name__ == "__main__":
    main()
